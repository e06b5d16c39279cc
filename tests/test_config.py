"""Tests for config models, YAML loading and model references."""

from pathlib import Path

import pytest

from tierwise.config import (
    AgentConfig,
    IntelligentRoutingConfig,
    TierModelConfig,
    default_analytics_path,
    get_config_path,
    load_config,
    parse_config,
    resolve_state_dir,
    save_config,
)
from tierwise.types import ModelRef, ModelTierId, RoutingBias


CONFIG_YAML = """\
default_model: anthropic/claude-sonnet-4-5
providers:
  ollama:
    base_url: http://localhost:11434/v1
    keep_alive: 5m
intelligent_routing:
  enabled: true
  bias: cost
  analytics: true
  tiers:
    t1: {model: "ollama/qwen2.5:7b", max_tokens: 512}
    t4: {model: anthropic/claude-opus-4-5}
  budget:
    daily_cap_usd: 5.0
    current_spend:
      daily_usd: "${TIERWISE_DAILY_SPEND:-0}"
"""


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


class TestDefaults:

    def test_routing_off_by_default(self):
        cfg = AgentConfig()
        assert cfg.intelligent_routing is None
        routing = IntelligentRoutingConfig()
        assert routing.enabled is False
        assert routing.bias == RoutingBias.BALANCED
        assert routing.analytics is False
        assert routing.tiers == {}
        assert routing.budget is None

    def test_missing_file_yields_defaults(self, tmp_path):
        assert load_config(tmp_path / "nope.yaml", env={}) == AgentConfig()


class TestLoadConfig:

    def test_full_file(self, config_file):
        cfg = load_config(config_file, env={"TIERWISE_DAILY_SPEND": "7.5"})
        routing = cfg.intelligent_routing
        assert routing.enabled
        assert routing.bias == RoutingBias.COST
        assert routing.tiers[ModelTierId.T1].max_tokens == 512
        assert routing.tiers[ModelTierId.T4].model == "anthropic/claude-opus-4-5"
        assert routing.budget.daily_cap_usd == 5.0
        assert routing.budget.current_spend.daily_usd == 7.5
        assert cfg.providers["ollama"].base_url == "http://localhost:11434/v1"

    def test_env_default_used_when_unset(self, config_file):
        cfg = load_config(config_file, env={})
        assert cfg.intelligent_routing.budget.current_spend.daily_usd == 0.0

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("intelligent_routing:\n  bias: cheapest\n", encoding="utf-8")
        with pytest.raises(ValueError, match="config.yaml"):
            load_config(path, env={})

    def test_unknown_tier_raises(self):
        with pytest.raises(ValueError):
            parse_config({"intelligent_routing": {"tiers": {"t9": {"model": "x/y"}}}}, env={})

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("intelligent_routing: [unclosed\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path, env={})

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_config(path, env={})

    def test_empty_file_yields_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path, env={}) == AgentConfig()


class TestSaveConfig:

    def test_save_then_load(self, tmp_path):
        cfg = AgentConfig(
            default_model="openai/gpt-4o",
            intelligent_routing=IntelligentRoutingConfig(
                enabled=True,
                bias=RoutingBias.QUALITY,
                tiers={ModelTierId.T2: TierModelConfig(model="openai/gpt-4o-mini", max_tokens=1024)},
            ),
        )
        path = save_config(cfg, tmp_path / "nested" / "config.yaml")
        assert path.exists()
        assert load_config(path, env={}) == cfg


class TestPaths:

    def test_state_dir_from_env(self, tmp_path):
        env = {"TIERWISE_STATE_DIR": str(tmp_path)}
        assert resolve_state_dir(env) == tmp_path
        assert get_config_path(env) == tmp_path / "config.yaml"
        assert default_analytics_path(env) == tmp_path / "logs" / "routing-analytics.jsonl"

    def test_blank_env_falls_back_to_home(self):
        assert resolve_state_dir({"TIERWISE_STATE_DIR": "  "}) == Path.home() / ".tierwise"


class TestModelRef:

    @pytest.mark.parametrize("raw,expected", [
        ("anthropic/claude-opus-4-5", ModelRef("anthropic", "claude-opus-4-5")),
        ("Ollama/qwen2.5:7b", ModelRef("ollama", "qwen2.5:7b")),
        ("openrouter/meta-llama/llama-3-70b", ModelRef("openrouter", "meta-llama/llama-3-70b")),
        ("  claude-sonnet-4-5  ", ModelRef("anthropic", "claude-sonnet-4-5")),
    ])
    def test_parse(self, raw, expected):
        assert ModelRef.parse(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "/model", "provider/", "/", None, 42])
    def test_parse_rejects(self, raw):
        assert ModelRef.parse(raw) is None

    def test_custom_default_provider(self):
        assert ModelRef.parse("gpt-4o", "openai") == ModelRef("openai", "gpt-4o")

    def test_str(self):
        assert str(ModelRef("ollama", "qwen2.5:7b")) == "ollama/qwen2.5:7b"
