"""Tests for URL, header and request plan construction."""

import pytest

from casefire.config import BUILTIN_PROVIDERS, PathConfig, Provider
from casefire.errors import MissingModelError
from casefire.planner import (
    FUSION_HEADER,
    FUSION_HEADER_VALUE,
    build_headers,
    build_url,
    plan_request,
    resolve_path,
)


def _provider(**kwargs) -> Provider:
    kwargs.setdefault("base_url", "https://h")
    return Provider(**kwargs)


class TestResolvePath:
    def test_registered_template(self):
        p = _provider(path=PathConfig(message="anthropic/v1/messages"))
        assert resolve_path(p, "message", False) == "anthropic/v1/messages"

    def test_gemini_stream_prefers_stream_template(self):
        p = BUILTIN_PROVIDERS["novita"]
        assert resolve_path(p, "gemini", True) == "gemini/v1/models/{model}:streamGenerateContent"
        assert resolve_path(p, "gemini", False) == "gemini/v1/models/{model}:generateContent"

    def test_gemini_stream_without_stream_template(self):
        p = _provider(path=PathConfig(gemini="g/{model}"))
        assert resolve_path(p, "gemini", True) == "g/{model}"

    def test_stream_flag_ignored_for_other_types(self):
        p = _provider(path=PathConfig(chat="c", gemini_stream="gs"))
        assert resolve_path(p, "chat", True) == "c"

    def test_literal_fallback(self):
        p = _provider()
        assert resolve_path(p, "v1/embeddings", False) == "v1/embeddings"

    def test_literal_fallback_strips_leading_slash(self):
        assert resolve_path(_provider(), "/v1/embeddings", False) == "v1/embeddings"

    def test_unset_known_type_falls_back_to_literal(self):
        assert resolve_path(_provider(), "response", False) == "response"


class TestBuildURL:
    def test_model_substitution(self):
        p = _provider(path=PathConfig(chat="v1/{model}"))
        assert build_url(p, "chat", False, "gpt-x") == "https://h/v1/gpt-x"

    def test_trailing_slash_stripped(self):
        p = _provider(base_url="https://h/", path=PathConfig(chat="v1/chat"))
        assert build_url(p, "chat", False, "") == "https://h/v1/chat"

    def test_every_placeholder_replaced(self):
        p = _provider(path=PathConfig(chat="{model}/x/{model}"))
        assert build_url(p, "chat", False, "m") == "https://h/m/x/m"

    def test_model_not_escaped(self):
        p = _provider(path=PathConfig(chat="{model}/v1/chat/completions"))
        assert build_url(p, "chat", False, "pa/gpt 4") == "https://h/pa/gpt 4/v1/chat/completions"

    def test_builtin_gemini_stream(self):
        url = build_url(BUILTIN_PROVIDERS["ppio"], "gemini", True, "gemini-2.5-pro")
        assert url == "https://api.ppio.com/gemini/v1/models/gemini-2.5-pro:streamGenerateContent"

    def test_local_fusion_chat(self):
        url = build_url(BUILTIN_PROVIDERS["local-fusion"], "chat", False, "gpt-4o")
        assert url == "http://localhost:8000/fusion/v1/gpt-4o/v1/chat/completions"


class TestBuildHeaders:
    def test_auth_by_default(self):
        headers = build_headers(_provider(), "tok")
        assert headers == {"Content-Type": "application/json", "Authorization": "Bearer tok"}

    def test_auth_disabled(self):
        headers = build_headers(_provider(auth_header=False), "tok")
        assert "Authorization" not in headers
        assert headers["Content-Type"] == "application/json"

    def test_fusion_header(self):
        headers = build_headers(_provider(fusion_header=True), "tok")
        assert headers[FUSION_HEADER] == FUSION_HEADER_VALUE

    def test_no_fusion_header(self):
        assert FUSION_HEADER not in build_headers(_provider(), "tok")


class TestPlanRequest:
    def test_plan_fields(self):
        p = BUILTIN_PROVIDERS["novita"]
        body = {"model": "gpt-4o", "messages": []}
        plan = plan_request(p, "chat", body, token="t")
        assert plan.method == "POST"
        assert plan.url == "https://api.novita.ai/openai/v1/chat/completions"
        assert plan.headers["Authorization"] == "Bearer t"
        assert plan.headers[FUSION_HEADER] == FUSION_HEADER_VALUE
        assert plan.body == body
        assert plan.raw_body is None
        assert plan.has_body

    def test_gemini_requires_model(self):
        with pytest.raises(MissingModelError):
            plan_request(BUILTIN_PROVIDERS["novita"], "gemini", {"contents": []}, token="t")

    def test_gemini_non_string_model(self):
        with pytest.raises(MissingModelError):
            plan_request(BUILTIN_PROVIDERS["novita"], "gemini", {"model": 1}, token="t")

    def test_other_types_allow_missing_model(self):
        plan = plan_request(BUILTIN_PROVIDERS["novita"], "message", {}, token="t")
        assert plan.url == "https://api.novita.ai/anthropic/v1/messages"
        assert not plan.has_body

    def test_raw_body_replaces_body(self):
        plan = plan_request(
            BUILTIN_PROVIDERS["local-fusion"], "chat", {"model": "m"},
            raw_body='{"model": "m", "x": 1}',
        )
        assert plan.body is None
        assert plan.raw_body == '{"model": "m", "x": 1}'
        assert plan.url == "http://localhost:8000/fusion/v1/m/v1/chat/completions"

    def test_extra_headers(self):
        plan = plan_request(
            BUILTIN_PROVIDERS["local-fusion"], "chat", {"model": "m"},
            extra_headers={"X-Trace": "1", "Content-Type": "text/plain"},
        )
        assert plan.headers["X-Trace"] == "1"
        assert plan.headers["Content-Type"] == "text/plain"
