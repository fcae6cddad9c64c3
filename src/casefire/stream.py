"""Render server-sent event streams as interleaved thinking/answer text.

Each request type streams reasoning and answer text in its own event shape.
An extractor per shape pulls out ``(thinking, answer)`` fragments, and
``StreamDecoder`` turns those into a single readable stream::

    <thinking>
    ...reasoning...
    </thinking>

    ...answer...
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Iterator

_logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_PAYLOAD = "[DONE]"

THINKING_OPEN = "<thinking>\n"
THINKING_CLOSE = "\n</thinking>\n\n"
THINKING_CLOSE_AT_END = "\n</thinking>\n"

Fragments = tuple[str | None, str | None]


def _first(items: Any) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


class Extractor:
    """Pulls (thinking, answer) text out of one decoded event."""

    def extract(self, event: dict[str, Any]) -> Fragments:
        return None, None


class ChatExtractor(Extractor):
    """OpenAI chat completions: ``choices[0].delta``."""

    def extract(self, event: dict[str, Any]) -> Fragments:
        choice = _first(event.get("choices"))
        if not isinstance(choice, dict):
            return None, None
        delta = choice.get("delta")
        if not isinstance(delta, dict):
            return None, None
        reasoning = delta.get("reasoning_content")
        content = delta.get("content")
        return (
            reasoning if isinstance(reasoning, str) and reasoning else None,
            content if isinstance(content, str) and content else None,
        )


class MessageExtractor(Extractor):
    """Anthropic messages: ``content_block_delta`` events."""

    def extract(self, event: dict[str, Any]) -> Fragments:
        if event.get("type") != "content_block_delta":
            return None, None
        delta = event.get("delta")
        if not isinstance(delta, dict):
            return None, None
        delta_type = delta.get("type")
        if delta_type == "thinking_delta":
            thinking = delta.get("thinking")
            if isinstance(thinking, str):
                return thinking, None
        elif delta_type == "text_delta":
            text = delta.get("text")
            if isinstance(text, str):
                return None, text
        return None, None


class GeminiExtractor(Extractor):
    """Gemini: ``candidates[0].content.parts[0]``, ``thought`` marks reasoning."""

    def extract(self, event: dict[str, Any]) -> Fragments:
        candidate = _first(event.get("candidates"))
        if not isinstance(candidate, dict):
            return None, None
        content = candidate.get("content")
        if not isinstance(content, dict):
            return None, None
        part = _first(content.get("parts"))
        if not isinstance(part, dict):
            return None, None
        text = part.get("text")
        if not isinstance(text, str):
            return None, None
        if part.get("thought") is True:
            return text, None
        return None, text


class ResponseExtractor(Extractor):
    """OpenAI Responses API: reasoning summary and output text deltas."""

    def extract(self, event: dict[str, Any]) -> Fragments:
        delta = event.get("delta")
        if not isinstance(delta, str):
            return None, None
        event_type = event.get("type")
        if event_type == "response.reasoning_summary_text.delta":
            return delta, None
        if event_type == "response.output_text.delta":
            return None, delta
        return None, None


_EXTRACTORS: dict[str, type[Extractor]] = {
    "chat": ChatExtractor,
    "message": MessageExtractor,
    "gemini": GeminiExtractor,
    "response": ResponseExtractor,
}


def extractor_for(request_type: str) -> Extractor:
    """Extractor for *request_type*; unknown types render nothing."""
    return _EXTRACTORS.get(request_type, Extractor)()


class StreamDecoder:
    """Decode one SSE stream into display fragments.

    States:
      answering - initial; answer text is emitted as-is
      thinking  - inside a <thinking> block

    Lines without the ``data: `` prefix, the ``[DONE]`` sentinel and
    payloads that are not JSON objects are dropped silently.
    """

    def __init__(self, request_type: str):
        self.request_type = request_type
        self.extractor = extractor_for(request_type)
        self.in_thinking = False
        self._finished = False

    def feed(self, line: str) -> Iterator[str]:
        """Process one line. Yields text fragments to display.

        This is a generator: the thinking state only advances as the result
        is iterated, so always consume it (``list(decoder.feed(line))``).
        """
        line = line.rstrip("\r\n")
        if not line.startswith(DATA_PREFIX):
            return
        payload = line[len(DATA_PREFIX):]
        if payload == DONE_PAYLOAD:
            return
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            _logger.debug("Skipping non-JSON stream line: %.80s", payload)
            return
        if not isinstance(event, dict):
            return

        thinking, answer = self.extractor.extract(event)
        if thinking is not None:
            if not self.in_thinking:
                self.in_thinking = True
                yield THINKING_OPEN
            if thinking:
                yield thinking
        if answer is not None:
            if self.in_thinking:
                self.in_thinking = False
                yield THINKING_CLOSE
            if answer:
                yield answer

    def finish(self) -> Iterator[str]:
        """Close an open thinking block and end the output with a newline."""
        if self._finished:
            return
        self._finished = True
        if self.in_thinking:
            self.in_thinking = False
            yield THINKING_CLOSE_AT_END
        yield "\n"

    def decode(self, lines: Iterable[str]) -> Iterator[str]:
        """Lazily decode *lines*.

        If the line source fails midway, the closing fragments are still
        yielded before the error propagates.
        """
        try:
            for line in lines:
                yield from self.feed(line)
        except Exception:
            yield from self.finish()
            raise
        yield from self.finish()


def render_stream(
    request_type: str,
    lines: Iterable[str],
    write: Callable[[str], Any],
    flush: Callable[[], Any] | None = None,
) -> str:
    """Write the decoded stream through *write*; return the full text."""
    decoder = StreamDecoder(request_type)
    parts: list[str] = []
    for fragment in decoder.decode(lines):
        parts.append(fragment)
        write(fragment)
        if flush is not None:
            flush()
    return "".join(parts)
