"""Send a RequestPlan over HTTP, or print it as a curl command.

This layer only moves bytes.  It never retries: a failed request is
reported and the invocation ends.
"""

from __future__ import annotations

import json
import logging
import shlex
from typing import Iterator

import httpx

from casefire.errors import TransportError
from casefire.planner import RequestPlan

_logger = logging.getLogger(__name__)

_ERROR_PREVIEW = 500  # chars of an error body to include in messages
HEREDOC_DELIMITER = "CASEFIRE_EOF"
DEFAULT_TIMEOUT = 300.0  # seconds; reasoning models can pause between chunks


def encode_body(plan: RequestPlan) -> str | None:
    if plan.raw_body is not None:
        return plan.raw_body
    if plan.body:
        return json.dumps(plan.body, ensure_ascii=False)
    return None


def to_curl(plan: RequestPlan) -> str:
    """Render *plan* as a copy-pasteable curl command."""
    lines = [f"curl -X {plan.method} {shlex.quote(plan.url)}"]
    for name, value in plan.headers.items():
        lines.append(f"  -H {shlex.quote(f'{name}: {value}')}")

    body = encode_body(plan)
    if body is None:
        return " \\\n".join(lines) + "\n"

    if plan.raw_body is None:
        pretty = json.dumps(plan.body, indent=2, ensure_ascii=False)
    else:
        try:
            pretty = json.dumps(json.loads(body), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            pretty = body
    lines.append(f"  -d @- << '{HEREDOC_DELIMITER}'")
    return " \\\n".join(lines) + f"\n{pretty}\n{HEREDOC_DELIMITER}\n"


class HttpTransport:
    """Thin httpx wrapper that executes RequestPlans."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, client: httpx.Client | None = None):
        # *timeout* bounds every read, so it must cover the longest pause
        # between streamed chunks.  Connecting never waits more than 30s.
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(30.0, timeout)),
        )

    def _build(self, plan: RequestPlan) -> httpx.Request:
        body = encode_body(plan)
        return self.client.build_request(
            plan.method,
            plan.url,
            headers=plan.headers,
            content=body.encode("utf-8") if body is not None else None,
        )

    def send(self, plan: RequestPlan) -> httpx.Response:
        """Send *plan* and return the fully read response."""
        try:
            resp = self.client.send(self._build(plan))
        except httpx.HTTPError as e:
            raise TransportError(f"request to {plan.url} failed: {e}") from e
        _logger.debug("%s %s -> %d", plan.method, plan.url, resp.status_code)
        _raise_for_status(resp, plan)
        return resp

    def iter_lines(self, plan: RequestPlan) -> Iterator[str]:
        """Send *plan* and yield response lines as they arrive."""
        try:
            resp = self.client.send(self._build(plan), stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"request to {plan.url} failed: {e}") from e
        try:
            _logger.debug("%s %s -> %d (streaming)", plan.method, plan.url, resp.status_code)
            if resp.status_code >= 400:
                resp.read()
                _raise_for_status(resp, plan)
            try:
                yield from resp.iter_lines()
            except httpx.HTTPError as e:
                raise TransportError(f"stream from {plan.url} interrupted: {e}") from e
        finally:
            resp.close()

    def close(self):
        self.client.close()

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _raise_for_status(resp: httpx.Response, plan: RequestPlan) -> None:
    if resp.status_code < 400:
        return
    preview = resp.text[:_ERROR_PREVIEW]
    raise TransportError(
        f"{plan.method} {plan.url} returned {resp.status_code}: {preview}",
        status_code=resp.status_code,
    )
