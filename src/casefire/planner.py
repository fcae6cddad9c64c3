"""Turn a provider, request type and body into a concrete HTTP request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from casefire.body import get_model
from casefire.config import PATH_KEYS, Provider
from casefire.errors import MissingModelError

_logger = logging.getLogger(__name__)

REQUEST_TYPES = ("chat", "message", "gemini", "response")

FUSION_HEADER = "X-Fusion-Beta"
FUSION_HEADER_VALUE = "with-provider-detail-2026-07-11"


@dataclass(frozen=True)
class RequestPlan:
    """A transport-agnostic request: what to send, not how."""
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] | None = None
    raw_body: str | None = None
    method: str = "POST"

    @property
    def has_body(self) -> bool:
        return self.raw_body is not None or bool(self.body)


def resolve_path(provider: Provider, request_type: str, stream: bool) -> str:
    """Pick the path template for *request_type*.

    Streaming gemini prefers ``gemini_stream``.  A type without a template
    is used as a literal path, which lets ad-hoc endpoints work unconfigured.
    """
    if request_type == "gemini" and stream and provider.path.gemini_stream:
        return provider.path.gemini_stream
    if request_type in PATH_KEYS:
        template = provider.path.get(request_type)
        if template:
            return template
    return request_type.lstrip("/")


def build_url(provider: Provider, request_type: str, stream: bool, model: str) -> str:
    path = resolve_path(provider, request_type, stream).replace("{model}", model)
    return provider.base_url.rstrip("/") + "/" + path


def build_headers(provider: Provider, token: str = "") -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if provider.needs_auth:
        headers["Authorization"] = f"Bearer {token}"
    if provider.fusion_header:
        headers[FUSION_HEADER] = FUSION_HEADER_VALUE
    return headers


def plan_request(
    provider: Provider,
    request_type: str,
    body: dict[str, Any],
    *,
    stream: bool = False,
    token: str = "",
    raw_body: str | None = None,
    extra_headers: dict[str, str] | None = None,
) -> RequestPlan:
    """Build the request for an already finalized body.

    Gemini puts the model in the URL path, so an empty ``model`` is
    rejected before the URL is built.
    """
    model = get_model(body)
    if not model and request_type == "gemini":
        raise MissingModelError(request_type)

    url = build_url(provider, request_type, stream, model)
    headers = build_headers(provider, token)
    if extra_headers:
        headers.update(extra_headers)
    _logger.debug("Planned POST %s (model=%r, stream=%s)", url, model, stream)
    return RequestPlan(
        url=url,
        headers=headers,
        body=None if raw_body is not None else body,
        raw_body=raw_body,
    )
