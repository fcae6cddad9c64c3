"""Bearer token lookup for providers that require auth."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping

from casefire.config import Provider, config_dir
from casefire.errors import TokenError

_logger = logging.getLogger(__name__)

_TOKEN_CMD_TIMEOUT = 30  # seconds


def env_key_for(provider_name: str) -> str:
    """``novita-dev`` -> ``NOVITA_DEV_API_KEY``."""
    return provider_name.upper().replace("-", "_") + "_API_KEY"


def resolve_token(
    provider_name: str,
    provider: Provider,
    home: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Find the token for *provider_name*.

    Search order (first match wins):
      1. ``token_cmd`` from the provider config, run through the shell
      2. ``~/.llm-test/<provider>``
      3. ``~/.llm-test/<provider>.jwt``
      4. ``$<PROVIDER>_API_KEY``
    """
    if provider.token_cmd:
        return _run_token_cmd(provider.token_cmd)

    env = os.environ if env is None else env
    tried: list[str] = []
    base = config_dir(home)
    for path in (base / provider_name, base / f"{provider_name}.jwt"):
        if path.is_file():
            _logger.debug("Using token file %s", path)
            return path.read_text(encoding="utf-8").strip()
        tried.append(str(path))

    key = env_key_for(provider_name)
    token = env.get(key, "")
    if token:
        return token
    tried.append(f"env:{key}")

    raise TokenError(f"no token found for provider {provider_name!r}, tried: {', '.join(tried)}")


def _run_token_cmd(cmd: str) -> str:
    try:
        result = subprocess.run(
            cmd, shell=True, capture_output=True, text=True, timeout=_TOKEN_CMD_TIMEOUT,
        )
    except subprocess.TimeoutExpired as e:
        raise TokenError(f"token_cmd {cmd!r} timed out after {_TOKEN_CMD_TIMEOUT}s") from e
    if result.returncode != 0:
        stderr = result.stderr.strip()
        detail = f": {stderr}" if stderr else ""
        raise TokenError(f"token_cmd {cmd!r} failed with exit status {result.returncode}{detail}")
    token = result.stdout.strip()
    if not token:
        _logger.warning("token_cmd %r produced no output", cmd)
    return token
