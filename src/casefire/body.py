"""Request body pipeline: load a case template, apply overrides and a merge patch."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from casefire.config import config_dir
from casefire.errors import CaseNotFoundError, CaseParseError, CaseReadError, PatchError

_logger = logging.getLogger(__name__)

DEFAULT_CASES_DIR = "./cases"


def case_paths(
    cases_dir: str | Path, case: str, request_type: str, home: Path | None = None,
) -> list[Path]:
    """Search order for a case file: the cases dir, then ``~/.llm-test/cases``."""
    filename = f"{request_type}.json"
    return [
        Path(cases_dir) / case / filename,
        config_dir(home) / "cases" / case / filename,
    ]


def list_cases(cases_dir: str | Path, home: Path | None = None) -> list[str]:
    """Names of all case directories in both search roots."""
    names: set[str] = set()
    for root in (Path(cases_dir), config_dir(home) / "cases"):
        if root.is_dir():
            names.update(p.name for p in root.iterdir() if p.is_dir())
    return sorted(names)


def load_case_raw(
    cases_dir: str | Path, case: str, request_type: str, home: Path | None = None,
) -> tuple[str, Path]:
    """Return (text, path) of the first case file found."""
    tried = case_paths(cases_dir, case, request_type, home)
    for path in tried:
        if path.is_file():
            _logger.debug("Using case file %s", path)
            try:
                return path.read_text(encoding="utf-8"), path
            except UnicodeDecodeError as e:
                raise CaseParseError(path, str(e)) from e
            except OSError as e:
                raise CaseReadError(path, str(e)) from e
    raise CaseNotFoundError(tried)


def load_case(
    cases_dir: str | Path, case: str, request_type: str, home: Path | None = None,
) -> dict[str, Any]:
    text, path = load_case_raw(cases_dir, case, request_type, home)
    try:
        body = json.loads(text)
    except json.JSONDecodeError as e:
        raise CaseParseError(path, str(e)) from e
    if not isinstance(body, dict):
        raise CaseParseError(path, "top-level value must be a JSON object")
    return body


def apply_model_override(body: dict[str, Any], model: str) -> None:
    if model:
        body["model"] = model


def apply_stream_override(body: dict[str, Any], stream: bool) -> None:
    # Never writes false: a template that streams keeps streaming
    if stream:
        body["stream"] = True


def merge_patch(target: Any, patch: Any) -> Any:
    """Apply an RFC 7396 JSON merge patch to parsed JSON values.

    Object keys in *patch* overwrite keys in *target*; a ``null`` value
    deletes the key.  Nested objects merge recursively; anything else
    replaces wholesale.
    """
    if not isinstance(patch, dict):
        return patch
    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


def apply_patch(body: dict[str, Any], patch: str) -> dict[str, Any]:
    """Merge-patch *body* with the JSON document *patch*.

    The body is serialized and re-parsed around the merge so the result is
    always plain JSON data.  An empty patch returns *body* unchanged.
    """
    if not patch:
        return body
    try:
        patch_doc = json.loads(patch)
    except json.JSONDecodeError as e:
        raise PatchError(f"failed to apply patch: invalid JSON: {e}") from e

    try:
        original = json.loads(json.dumps(body))
    except (TypeError, ValueError) as e:
        raise PatchError(f"failed to marshal body: {e}") from e
    merged = merge_patch(original, patch_doc)

    result = json.loads(json.dumps(merged))
    if not isinstance(result, dict):
        raise PatchError(
            f"failed to apply patch: result must be a JSON object, got {type(result).__name__}")
    return result


def get_model(body: dict[str, Any]) -> str:
    model = body.get("model")
    if isinstance(model, str):
        return model
    return ""


def build_body(
    cases_dir: str | Path,
    case: str,
    request_type: str,
    model: str = "",
    stream: bool = False,
    patch: str = "",
    home: Path | None = None,
) -> dict[str, Any]:
    """Load the case (or start empty), then apply model, stream and patch."""
    body = load_case(cases_dir, case, request_type, home) if case else {}
    apply_model_override(body, model)
    apply_stream_override(body, stream)
    return apply_patch(body, patch)
