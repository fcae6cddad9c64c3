"""Provider configuration for casefire.

Built-in provider profiles are merged with the user's overrides from
``~/.llm-test/providers.yaml``; named model lists come from
``~/.llm-test/models.yaml``.  Both files are optional.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from casefire.errors import ConfigParseError, UnknownProviderError

_logger = logging.getLogger(__name__)

CONFIG_DIRNAME = ".llm-test"
PROVIDERS_FILENAME = "providers.yaml"
MODELS_FILENAME = "models.yaml"

PATH_KEYS = ("chat", "message", "gemini", "gemini_stream", "response")


class PathConfig(BaseModel):
    """Path templates per request type.  ``{model}`` is substituted."""
    chat: str = ""
    message: str = ""
    gemini: str = ""
    gemini_stream: str = ""
    response: str = ""

    def get(self, key: str) -> str:
        if key not in PATH_KEYS:
            return ""
        return getattr(self, key)


class ModelRef(BaseModel):
    ref: str
    prefix: str = ""


class Provider(BaseModel):
    base_url: str = ""
    path: PathConfig = Field(default_factory=PathConfig)
    fusion_header: bool = False
    token_cmd: str = ""
    auth_header: bool | None = None  # None = auth required
    models: list[str] = Field(default_factory=list)
    models_ref: list[ModelRef] = Field(default_factory=list)

    @property
    def needs_auth(self) -> bool:
        if self.auth_header is None:
            return True
        return self.auth_header


def _hosted(base_url: str) -> Provider:
    return Provider(
        base_url=base_url,
        path=PathConfig(
            chat="openai/v1/chat/completions",
            message="anthropic/v1/messages",
            gemini="gemini/v1/models/{model}:generateContent",
            gemini_stream="gemini/v1/models/{model}:streamGenerateContent",
            response="openai/v1/responses",
        ),
        models_ref=[
            ModelRef(ref="openai", prefix="pa/"),
            ModelRef(ref="anthropic", prefix="pa/"),
            ModelRef(ref="google", prefix="pa/"),
        ],
        fusion_header=True,
    )


BUILTIN_PROVIDERS: dict[str, Provider] = {
    "novita": _hosted("https://api.novita.ai"),
    "novita-dev": _hosted("https://dev-api.novita.ai"),
    "ppio": _hosted("https://api.ppio.com"),
    "ppio-dev": _hosted("https://dev-api.ppinfra.com"),
    "local-fusion": Provider(
        base_url="http://localhost:8000/fusion/v1",
        path=PathConfig(
            chat="{model}/v1/chat/completions",
            message="{model}/v1/messages",
            gemini="{model}:generateContent",
            gemini_stream="{model}:streamGenerateContent",
            response="{model}/v1/responses",
        ),
        models_ref=[
            ModelRef(ref="openai"),
            ModelRef(ref="anthropic"),
            ModelRef(ref="google"),
        ],
        fusion_header=False,
        auth_header=False,
    ),
}


class Config(BaseModel):
    """Merged provider table plus named model lists."""
    providers: dict[str, Provider] = Field(default_factory=dict)
    model_lists: dict[str, list[str]] = Field(default_factory=dict)

    def resolve(self, name: str) -> Provider:
        provider = self.providers.get(name)
        if provider is None:
            raise UnknownProviderError(name)
        return provider

    def provider_names(self) -> list[str]:
        return sorted(self.providers)

    def models_for(self, provider_name: str) -> list[str]:
        """Return the model names reachable from *provider_name*.

        Order: the provider's own ``models``, then the model list sharing
        its name, then each ``models_ref`` entry in declaration order with
        that ref's prefix prepended.  A ref naming a provider recurses; a
        ref naming a model list takes the list as-is.

        One visited set is shared by the whole traversal.  A provider seen
        before contributes nothing the second time, so self-references and
        cycles terminate.  Duplicates are not removed.
        """
        return self._collect_models(provider_name, set())

    def _collect_models(self, provider_name: str, visited: set[str]) -> list[str]:
        if provider_name in visited:
            return []
        visited.add(provider_name)

        provider = self.providers.get(provider_name)
        if provider is None:
            return []

        result: list[str] = list(provider.models)
        result.extend(self.model_lists.get(provider_name, []))

        for ref in provider.models_ref:
            if ref.ref in self.providers:
                models = self._collect_models(ref.ref, visited)
            else:
                models = self.model_lists.get(ref.ref, [])
            result.extend(_apply_prefix(models, ref.prefix))

        return result


def _apply_prefix(models: list[str], prefix: str) -> list[str]:
    if not prefix:
        return list(models)
    return [prefix + m for m in models]


def merge_provider(base: Provider, override: Provider) -> Provider:
    """Return a copy of *base* with the set fields of *override* applied.

    Strings, ``models`` and ``models_ref`` replace only when non-empty and
    ``auth_header`` only when set.  ``fusion_header`` always comes from the
    override, so an override without it turns the header off.
    """
    merged = base.model_copy(deep=True)
    if override.base_url:
        merged.base_url = override.base_url
    for key in PATH_KEYS:
        value = override.path.get(key)
        if value:
            setattr(merged.path, key, value)
    if override.token_cmd:
        merged.token_cmd = override.token_cmd
    if override.auth_header is not None:
        merged.auth_header = override.auth_header
    if override.models:
        merged.models = list(override.models)
    if override.models_ref:
        merged.models_ref = [r.model_copy() for r in override.models_ref]
    merged.fusion_header = override.fusion_header
    return merged


def merge(
    builtin: dict[str, Provider],
    overrides: dict[str, Provider] | None = None,
    model_lists: dict[str, list[str]] | None = None,
) -> Config:
    """Merge user overrides on top of the built-in provider table."""
    providers = {name: p.model_copy(deep=True) for name, p in builtin.items()}
    for name, override in (overrides or {}).items():
        if name in providers:
            providers[name] = merge_provider(providers[name], override)
        else:
            providers[name] = override.model_copy(deep=True)
    lists = {name: list(models) for name, models in (model_lists or {}).items()}
    return Config(providers=providers, model_lists=lists)


_PROVIDERS_ADAPTER = TypeAdapter(dict[str, Provider])
_MODEL_LISTS_ADAPTER = TypeAdapter(dict[str, list[str]])


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParseError(path, str(e)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigParseError(path, str(e)) from e


def _drop_nulls(value: Any) -> Any:
    """Remove keys with empty YAML values so they fall back to defaults."""
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value]
    return value


def _load_providers(path: Path) -> dict[str, Provider]:
    raw = _read_yaml(path) or {}
    if not isinstance(raw, dict):
        raise ConfigParseError(path, "expected a mapping of provider name to settings")
    # A bare "name:" entry means "all defaults", and so does a bare field
    raw = {name: _drop_nulls(value if value is not None else {}) for name, value in raw.items()}
    try:
        return _PROVIDERS_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise ConfigParseError(path, str(e)) from e


def _load_model_lists(path: Path) -> dict[str, list[str]]:
    raw = _read_yaml(path) or {}
    if not isinstance(raw, dict):
        raise ConfigParseError(path, "expected a mapping of list name to model names")
    raw = {name: (value if value is not None else []) for name, value in raw.items()}
    try:
        return _MODEL_LISTS_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise ConfigParseError(path, str(e)) from e


def config_dir(home: Path | None = None) -> Path:
    return (home if home is not None else Path.home()) / CONFIG_DIRNAME


def load_config(
    providers_path: str | Path | None = None,
    models_path: str | Path | None = None,
    home: Path | None = None,
) -> Config:
    """Build the provider table for this invocation.

    Default locations are ``~/.llm-test/providers.yaml`` and
    ``~/.llm-test/models.yaml``; missing default files are skipped.  An
    explicit path that does not exist is an error.
    """
    base = config_dir(home)

    overrides: dict[str, Provider] = {}
    p_path = Path(providers_path) if providers_path else base / PROVIDERS_FILENAME
    if p_path.exists():
        overrides = _load_providers(p_path)
        _logger.debug("Loaded %d provider override(s) from %s", len(overrides), p_path)
    elif providers_path is not None:
        raise ConfigParseError(p_path, "file not found")

    lists: dict[str, list[str]] = {}
    m_path = Path(models_path) if models_path else base / MODELS_FILENAME
    if m_path.exists():
        lists = _load_model_lists(m_path)
        _logger.debug("Loaded %d model list(s) from %s", len(lists), m_path)
    elif models_path is not None:
        raise ConfigParseError(m_path, "file not found")

    return merge(BUILTIN_PROVIDERS, overrides, lists)
