"""Settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

from ..ai.ai_types import ContextMode
from ..ai.client import ClientSettings
from ..ai.model_registry import DEFAULT_MODEL
from ..ai.orchestration.runner import EngineSettings

__all__ = [
    "Settings",
    "SettingsStore",
    "active_env_overrides",
    "coerce_setting",
    "parse_overrides",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".pagewise"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_PREFIX = "PAGEWISE_"
# Fields that can be set from PAGEWISE_<FIELD> variables.
_ENV_FIELDS: tuple[str, ...] = (
    "api_key",
    "base_url",
    "model",
    "organization",
    "default_mode",
    "guidance",
    "debug_logging",
    "request_timeout",
    "temperature",
    "token_budget",
    "max_tool_rounds",
    "max_retries",
)
# Read only when no API key was configured any other way.
_FALLBACK_API_KEY_ENV = "OPENAI_API_KEY"
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = DEFAULT_MODEL
    organization: str | None = None
    token_budget: int = 4_096
    max_tool_rounds: int = 5
    temperature: float | None = None
    request_timeout: float = 90.0
    max_retries: int = 1
    default_mode: str = ContextMode.CURRENT_PAGE_ONLY.value
    debug_logging: bool = False
    guidance: str | None = None
    default_headers: dict[str, str] = field(default_factory=dict)

    def engine_settings(self) -> EngineSettings:
        """Return the conversation engine configuration."""

        try:
            mode = ContextMode.parse(self.default_mode)
        except ValueError:
            LOGGER.warning("Unknown default_mode %r; using current page only", self.default_mode)
            mode = ContextMode.CURRENT_PAGE_ONLY
        return EngineSettings(
            model=self.model,
            token_budget=self.token_budget,
            max_tool_rounds=self.max_tool_rounds,
            default_mode=mode,
            guidance=self.guidance or None,
        )

    def client_settings(self) -> ClientSettings:
        """Return the completion client configuration."""

        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            organization=self.organization,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            temperature=self.temperature,
            default_headers=dict(self.default_headers or {}),
            debug_logging=self.debug_logging,
        )


class SettingsStore:
    """Load and persist :class:`Settings` as JSON.

    The API key is kept in memory only; it is stripped before writing and
    comes from the environment (or CLI overrides) on load.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path else _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            if payload.pop("api_key", None):
                LOGGER.warning("Ignoring api_key stored in %s; set PAGEWISE_API_KEY instead", self._path)
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s", self._path)

        settings = self._apply_env_overrides(settings)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        if not settings.api_key:
            fallback = os.environ.get(_FALLBACK_API_KEY_ENV)
            if fallback:
                settings = replace(settings, api_key=fallback)
        return settings

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        data.pop("api_key", None)
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            filtered[key] = value
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _env_names().items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = coerce_setting(field_name, value)
            except ValueError as exc:
                LOGGER.warning("Ignoring environment override %s: %s", env_name, exc)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings

def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)} - {"api_key"}
    return {key: value for key, value in payload.items() if key in allowed}


# ----------------------------------------------------------------------
# Textual overrides (--set KEY=VALUE and PAGEWISE_* variables)
# ----------------------------------------------------------------------


def parse_overrides(items: Sequence[str]) -> Dict[str, Any]:
    """Parse `KEY=VALUE` entries into typed settings overrides.

    Raises:
        ValueError: When an entry is malformed, names an unknown field, or
            carries a value that does not fit the field.
    """

    overrides: Dict[str, Any] = {}
    for entry in items:
        key, separator, raw_value = entry.partition("=")
        key = key.strip()
        if not separator:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if not key:
            raise ValueError("Override is missing a field name.")
        overrides[key] = coerce_setting(key, raw_value)
    return overrides


def coerce_setting(name: str, raw_value: str) -> Any:
    """Convert the text form of a setting to the type of field *name*."""

    kinds = _field_kinds()
    if name not in kinds:
        raise ValueError(f"Unknown setting '{name}'.")
    kind, optional = kinds[name]
    value = raw_value.strip()
    if optional and value.lower() in {"none", "null"}:
        return None
    if kind == "bool":
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{name} expects a boolean, got '{value}'.")
    if kind in {"int", "float"}:
        try:
            return int(value, 10) if kind == "int" else float(value)
        except ValueError:
            raise ValueError(f"{name} expects {kind}, got '{value}'.") from None
    if kind == "dict":
        try:
            parsed = json.loads(value or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError(f"{name} expects a JSON object.") from exc
        if not isinstance(parsed, dict):
            raise ValueError(f"{name} expects a JSON object.")
        return {str(key): str(item) for key, item in parsed.items()}
    return value


def active_env_overrides() -> list[str]:
    """Names of the environment variables currently feeding settings."""

    names = [name for name in _env_names() if name in os.environ]
    if _FALLBACK_API_KEY_ENV in os.environ:
        names.append(_FALLBACK_API_KEY_ENV)
    return sorted(names)


def _env_names() -> Dict[str, str]:
    return {f"{_ENV_PREFIX}{name.upper()}": name for name in _ENV_FIELDS}


def _field_kinds() -> Dict[str, tuple[str, bool]]:
    # Annotations are strings here (postponed evaluation), e.g. "float | None".
    kinds: Dict[str, tuple[str, bool]] = {}
    for item in fields(Settings):
        parts = [part.strip() for part in str(item.type).split("|")]
        base = next((part for part in parts if part != "None"), "str")
        kinds[item.name] = (base.split("[", 1)[0], "None" in parts)
    return kinds


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
