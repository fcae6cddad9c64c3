"""casefire - fire stored LLM request cases at provider APIs."""

from casefire.body import apply_model_override, apply_patch, apply_stream_override, get_model, load_case
from casefire.config import BUILTIN_PROVIDERS, Config, Provider, load_config, merge
from casefire.planner import RequestPlan, build_url, plan_request
from casefire.stream import StreamDecoder

__all__ = [
    "BUILTIN_PROVIDERS",
    "Config",
    "Provider",
    "RequestPlan",
    "StreamDecoder",
    "apply_model_override",
    "apply_patch",
    "apply_stream_override",
    "build_url",
    "get_model",
    "load_case",
    "load_config",
    "merge",
    "plan_request",
]
