"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any

import yaml


class ConfigError(ValueError):
    """Raised when a loaded configuration is internally inconsistent."""


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMProviderConfig:
    name: str = "openai"
    model: str = "gpt-4o"
    api_base: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float | None = None
    max_tokens: int | None = None
    timeout_seconds: int = 120
    max_retries: int = 3
    native_tools: bool = False


@dataclass
class AgentConfig:
    max_tool_iterations: int = 15
    max_total_iterations: int = 20
    tool_timeout_seconds: float = 30.0


@dataclass
class ToolsConfig:
    disabled: list[str] = field(default_factory=list)


@dataclass
class PluginsConfig:
    enabled: bool = False
    allow_distributions: list[str] = field(default_factory=list)
    allow_tools: list[str] = field(default_factory=list)


@dataclass
class SessionConfig:
    history_db: str = "~/.stormy/history.db"


@dataclass
class LoggingConfig:
    level: str = "WARNING"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class StormyConfig:
    llm: LLMProviderConfig = field(default_factory=LLMProviderConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'llm.model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def validate(self) -> None:
        """Raise ``ConfigError`` if the iteration ceilings are inconsistent."""
        agent = self.agent
        if agent.max_tool_iterations < 1:
            raise ConfigError("agent.max_tool_iterations must be at least 1")
        if agent.max_total_iterations < agent.max_tool_iterations:
            raise ConfigError(
                "agent.max_total_iterations "
                f"({agent.max_total_iterations}) must be >= agent.max_tool_iterations "
                f"({agent.max_tool_iterations})"
            )
        if agent.tool_timeout_seconds <= 0:
            raise ConfigError("agent.tool_timeout_seconds must be positive")

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "STORMY_LLM_NAME":                 ("llm.name", str),
    "STORMY_LLM_MODEL":                ("llm.model", str),
    "STORMY_LLM_API_BASE":             ("llm.api_base", str),
    "STORMY_LLM_API_KEY_ENV":          ("llm.api_key_env", str),
    "STORMY_LLM_TEMPERATURE":          ("llm.temperature", float),
    "STORMY_LLM_MAX_TOKENS":           ("llm.max_tokens", int),
    "STORMY_LLM_TIMEOUT":              ("llm.timeout_seconds", int),
    "STORMY_LLM_MAX_RETRIES":          ("llm.max_retries", int),
    "STORMY_LLM_NATIVE_TOOLS":         ("llm.native_tools", bool),
    "STORMY_AGENT_MAX_TOOL_ITERATIONS": ("agent.max_tool_iterations", int),
    "STORMY_AGENT_MAX_ITERATIONS":     ("agent.max_total_iterations", int),
    "STORMY_AGENT_TOOL_TIMEOUT":       ("agent.tool_timeout_seconds", float),
    "STORMY_TOOLS_DISABLED":           ("tools.disabled", list),
    "STORMY_PLUGINS_ENABLED":          ("plugins.enabled", bool),
    "STORMY_SESSION_HISTORY_DB":       ("session.history_db", str),
    "STORMY_LOG_LEVEL":                ("logging.level", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> StormyConfig:
    """
    Build a StormyConfig by layering sources in precedence order:

        defaults  <  config file  <  profile  <  env vars  <  CLI flags

    Per-session overrides are applied afterwards with ``set_override``.

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides

    Raises ``ConfigError`` if the result fails validation.
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile and "profiles" in raw:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    cfg = StormyConfig(
        llm=_build_section(LLMProviderConfig, raw.get("llm", {})),
        agent=_build_section(AgentConfig, raw.get("agent", {})),
        tools=_build_section(ToolsConfig, raw.get("tools", {})),
        plugins=_build_section(PluginsConfig, raw.get("plugins", {})),
        session=_build_section(SessionConfig, raw.get("session", {})),
        logging=_build_section(LoggingConfig, raw.get("logging", {})),
        profiles=raw.get("profiles", {}),
    )

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    cfg.validate()
    return cfg
