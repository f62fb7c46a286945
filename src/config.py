"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. Explicit path passed to ``load_config``
2. ./ensagent.yaml (working directory)
3. ~/.ensagent/config.yaml (user home)

With no file found, defaults are used. Environment variables override
YAML: ENSAGENT_<SECTION>_<KEY>. ${VAR} references in YAML values resolve
from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """

    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


def _default_model() -> str:
    return (
        os.environ.get("AGENT_MODEL")
        or os.environ.get("ANTHROPIC_MODEL")
        or DEFAULT_MODEL
    )


def _default_integrity_secret() -> str | None:
    return os.environ.get("REDIS_INTEGRITY_SECRET") or None


class AgentSettings(BaseModel):
    """Turn loop limits and cost accounting."""

    model: str = Field(default_factory=_default_model)
    max_turns: int = Field(default=25, ge=1)
    max_tokens: int = Field(default=4096, ge=1)
    history_window: int = Field(default=10, ge=0)
    input_cost_per_1k: float = 0.003
    output_cost_per_1k: float = 0.015


class StateSettings(BaseModel):
    """Key-value backend and integrity envelope settings."""

    redis_url: str = "redis://localhost:6379/0"
    integrity_secret: str | None = Field(default_factory=_default_integrity_secret)
    key_prefix: str = ""
    flow_ttl_seconds: int = 1800
    session_ttl_seconds: int = 1800
    max_state_age_seconds: int = 1800

    @field_validator("integrity_secret")
    @classmethod
    def empty_secret_is_none(cls, v: str | None) -> str | None:
        return v or None


class RegistrationSettings(BaseModel):
    """Commit-reveal parameters (protocol minimum age, safety margin)."""

    chain_id: int = 1
    min_commitment_age_seconds: int = 60
    max_commitment_age_seconds: int = 86400
    wait_safety_margin_seconds: int = 5
    max_years: int = 10


class BridgeSettings(BaseModel):
    """Cross-chain bridge solver parameters."""

    source_chain_id: int = 8453
    dest_chain_id: int = 1
    fee_margin_percent: int = 10
    source_gas_reserve_wei: int = 10**15
    min_bridge_amount_wei: int = 10**15

    @field_validator("fee_margin_percent")
    @classmethod
    def margin_at_least_ten(cls, v: int) -> int:
        if v < 10:
            raise ValueError("fee_margin_percent must be at least 10")
        return v


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: Literal["text", "json"] = "text"


class AppConfig(BaseModel):
    """Top-level configuration for the ENS agent."""

    agent: AgentSettings = Field(default_factory=AgentSettings)
    state: StateSettings = Field(default_factory=StateSettings)
    registration: RegistrationSettings = Field(default_factory=RegistrationSettings)
    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "ensagent.yaml",
        Path.cwd() / "ensagent.yml",
        Path.home() / ".ensagent" / "config.yaml",
        Path.home() / ".ensagent" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply ENSAGENT_<SECTION>_<KEY> env var overrides to config data.

    For example, ``ENSAGENT_AGENT_MAX_TURNS=10`` maps to section ``agent``,
    field ``max_turns``.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    prefix = "ENSAGENT_"
    known_sections = sorted(AppConfig.model_fields.keys(), key=len, reverse=True)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()

        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break

        if matched_section is None or not matched_field:
            continue

        if matched_section not in data or data[matched_section] is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            # Coerce to int, bool, or keep as string
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value

    return data


def load_config(config_path: str | None = None) -> AppConfig:
    """Load configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.ensagent/).

    Returns:
        Parsed and validated AppConfig. Defaults apply when no file exists.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    raw_data: dict[str, Any] = {}
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return AppConfig(**data)
