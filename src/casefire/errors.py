"""Error types raised by casefire.

Every error here is fatal for the current invocation; nothing is retried.
The CLI catches ``CasefireError`` and prints the message.
"""

from __future__ import annotations

from pathlib import Path


class CasefireError(Exception):
    """Base class for all casefire errors."""


class ConfigParseError(CasefireError, ValueError):
    """A providers/models override document could not be parsed or validated."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        super().__init__(f"failed to parse {self.path}: {reason}")


class UnknownProviderError(CasefireError, ValueError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"unknown provider {name!r}")


class CaseNotFoundError(CasefireError, FileNotFoundError):
    """Neither the cases directory nor the home cache has the case file."""

    def __init__(self, tried: list[Path]):
        self.tried = list(tried)
        lines = "\n".join(f"  - {p}" for p in self.tried)
        super().__init__(f"failed to read case file, tried:\n{lines}")

    def __str__(self) -> str:
        return self.args[0]


class CaseReadError(CasefireError, OSError):
    """The case file exists but could not be read."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"failed to read case file {path}: {reason}")

    def __str__(self) -> str:
        return self.args[0]


class CaseParseError(CasefireError, ValueError):
    def __init__(self, path: Path, reason: str):
        self.path = path
        super().__init__(f"failed to parse case JSON {path}: {reason}")


class PatchError(CasefireError, ValueError):
    pass


class MissingModelError(CasefireError, ValueError):
    def __init__(self, request_type: str):
        self.request_type = request_type
        super().__init__(f"model is required for {request_type} type")


class TokenError(CasefireError, RuntimeError):
    pass


class TransportError(CasefireError, RuntimeError):
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
