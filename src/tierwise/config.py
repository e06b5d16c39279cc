"""Configuration for intelligent routing.

The host agent keeps one YAML config file under the state directory
(default ~/.tierwise/config.yaml). This module defines the typed
models for it and the load/save helpers.

Example config.yaml:

    default_model: anthropic/claude-sonnet-4-5
    providers:
      ollama:
        base_url: http://localhost:11434/v1
    intelligent_routing:
      enabled: true
      bias: balanced
      analytics: true
      tiers:
        t1: {model: "ollama/qwen2.5:7b", max_tokens: 512}
        t4: {model: anthropic/claude-opus-4-5}
      budget:
        daily_cap_usd: 5.0
        current_spend:
          daily_usd: "${TIERWISE_DAILY_SPEND:-0}"

String values may reference environment variables as ${VAR} or
${VAR:-default}.
"""

import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tierwise.types import ModelTierId, RoutingBias

logger = logging.getLogger(__name__)

STATE_DIR_ENV = "TIERWISE_STATE_DIR"
ANALYTICS_FILENAME = "routing-analytics.jsonl"

_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)(?::-(.*?))?\}")


# ── Models ─────────────────────────────────────────────


class TierModelConfig(BaseModel):
    """Model assignment for one tier."""
    model: str  # "provider/model", e.g. "ollama/qwen2.5:7b"
    max_tokens: int | None = None


class CurrentSpend(BaseModel):
    """Spend totals aggregated by the caller. Never computed here."""
    daily_usd: float | None = None
    monthly_usd: float | None = None


class RoutingBudgetConfig(BaseModel):
    """Budget constraints that can clamp the selected tier down to T1."""
    daily_cap_usd: float | None = None
    monthly_cap_usd: float | None = None
    prefer_free: bool = False
    current_spend: CurrentSpend | None = None


class IntelligentRoutingConfig(BaseModel):
    """The intelligent_routing section of the agent config."""
    enabled: bool = False
    bias: RoutingBias = RoutingBias.BALANCED
    tiers: dict[ModelTierId, TierModelConfig] = Field(default_factory=dict)
    budget: RoutingBudgetConfig | None = None
    analytics: bool = False
    analytics_path: Path | None = None


class ProviderConfig(BaseModel):
    """Per-provider connection settings. Unknown keys are kept."""
    model_config = ConfigDict(extra="allow")

    base_url: str | None = None


class AgentConfig(BaseModel):
    """Top-level agent config consumed by the router."""
    default_model: str | None = None
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    intelligent_routing: IntelligentRoutingConfig | None = None


# ── Paths ──────────────────────────────────────────────


def resolve_state_dir(env: Mapping[str, str] | None = None) -> Path:
    """Get the state directory root ($TIERWISE_STATE_DIR or ~/.tierwise)."""
    env = os.environ if env is None else env
    override = env.get(STATE_DIR_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".tierwise"


def get_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Get the config file path."""
    return resolve_state_dir(env) / "config.yaml"


def default_analytics_path(env: Mapping[str, str] | None = None) -> Path:
    """Get the default routing analytics log path."""
    return resolve_state_dir(env) / "logs" / ANALYTICS_FILENAME


# ── Loading ────────────────────────────────────────────


def _substitute_env_vars(value: str, env: Mapping[str, str]) -> str:
    """Replace ${VAR:-default} patterns with environment values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        default = match.group(2) or ""
        return env.get(var_name, default)

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars(obj: Any, env: Mapping[str, str]) -> Any:
    """Recursively resolve env var placeholders in a config tree."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj, env)
    if isinstance(obj, dict):
        return {k: _resolve_env_vars(v, env) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_resolve_env_vars(item, env) for item in obj]
    return obj


def parse_config(
    data: Mapping[str, Any] | None,
    env: Mapping[str, str] | None = None,
) -> AgentConfig:
    """Build an AgentConfig from an already-parsed mapping.

    Raises:
        ValueError: If the mapping does not validate.
    """
    env = os.environ if env is None else env
    resolved = _resolve_env_vars(dict(data or {}), env)
    try:
        return AgentConfig.model_validate(resolved)
    except ValidationError as e:
        raise ValueError(f"Invalid agent config: {e}") from e


def load_config(
    path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> AgentConfig:
    """Load the agent config from YAML.

    A missing file yields the defaults (routing disabled).

    Raises:
        ValueError: If the file is not valid YAML or fails validation.
    """
    config_path = path or get_config_path(env)
    if not config_path.exists():
        logger.debug(f"No config at {config_path}, using defaults")
        return AgentConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Could not parse {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"{config_path} must contain a mapping at the top level")

    try:
        return parse_config(data, env)
    except ValueError as e:
        raise ValueError(f"{config_path}: {e}") from e


def save_config(config: AgentConfig, path: Path | None = None) -> Path:
    """Save the config to YAML, creating parent directories."""
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    return config_path
