"""Tests for treasury-agent configuration."""

from decimal import Decimal
from pathlib import Path

import pytest

from treasury_agent.config import AgentConfig, ConfigurationError, LLMConfig


class TestAgentConfig:
    """Test configuration loading and parsing."""

    def test_default_config(self):
        """Defaults should match the documented agent behaviour."""
        config = AgentConfig()

        assert config.cooldown_minutes == 12
        assert config.duplicate_window_hours == 24
        assert config.confidence_threshold == 0.3
        assert config.max_candidates == 20
        assert config.slippage_percent == 5
        assert config.reclaim_stale_after_minutes == 60
        assert config.allocation.min_eth == Decimal("0.0001")
        assert config.allocation.max_eth == Decimal("0.1")
        assert config.allocation.default_eth == Decimal("0.01")

    def test_paths_derive_from_data_dir(self):
        """Queue and marker files live under data_dir unless overridden."""
        config = AgentConfig.from_dict({"data_dir": "/var/agent"})

        assert config.suggestions_path == Path("/var/agent/suggestions-queue.json")
        assert config.agent_marker_path == Path("/var/agent/last-agent-run.json")
        assert config.executor_marker_path == Path("/var/agent/last-executor-run.json")

    def test_queue_path_override(self):
        config = AgentConfig.from_dict({"queue_path": "/tmp/q.json"})
        assert config.suggestions_path == Path("/tmp/q.json")

    def test_from_dict_sections(self):
        """Nested sections should be parsed into their dataclasses."""
        config = AgentConfig.from_dict(
            {
                "confidence_threshold": 0.5,
                "dao": {"treasury_address": "0xtreasury"},
                "chain": {"state_selector": "0x3e4f49e6"},
                "allocation": {"percent": 2, "max_eth": 0.5},
                "llm": {"model": "llama3.1:8b", "provider": "ollama"},
            }
        )

        assert config.confidence_threshold == 0.5
        assert config.dao.treasury_address == "0xtreasury"
        assert config.dao.token_address  # default kept
        assert config.chain.state_selector == "0x3e4f49e6"
        assert config.allocation.percent == Decimal("2")
        assert config.allocation.max_eth == Decimal("0.5")
        assert config.allocation.min_eth == Decimal("0.0001")
        assert config.llm.provider == "ollama"

    def test_from_yaml(self, tmp_path):
        """Should read agent config from datasette.yaml plugin section."""
        config_file = tmp_path / "datasette.yaml"
        config_file.write_text(
            """
plugins:
  datasette-treasury-queue:
    agent:
      cooldown_minutes: 30
      dao:
        treasury_address: "0xabc"
"""
        )

        config = AgentConfig.from_yaml(config_file)

        assert config.cooldown_minutes == 30
        assert config.dao.treasury_address == "0xabc"

    def test_from_yaml_missing_file(self, tmp_path):
        """Missing file should return defaults."""
        config = AgentConfig.from_yaml(tmp_path / "nope.yaml")
        assert config.cooldown_minutes == 12

    def test_require_reports_missing(self):
        """require() should name every missing setting."""
        config = AgentConfig()

        with pytest.raises(ConfigurationError) as exc:
            config.require("dao.treasury_address", "chain.state_selector", "dao.token_address")

        assert "dao.treasury_address" in str(exc.value)
        assert "chain.state_selector" in str(exc.value)
        assert "dao.token_address" not in str(exc.value)

    def test_to_dict_has_no_secrets(self):
        config = AgentConfig.from_dict({"llm": {"api_key": "sk-secret"}})
        assert "sk-secret" not in str(config.to_dict())


class TestLLMConfig:
    def test_api_key_from_env(self, monkeypatch):
        """API key should be read from the named environment variable."""
        monkeypatch.setenv("TEST_LLM_KEY", "from-env")
        config = LLMConfig(api_key_env="TEST_LLM_KEY")
        assert config.get_api_key() == "from-env"

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("TEST_LLM_KEY", "from-env")
        config = LLMConfig(api_key="explicit", api_key_env="TEST_LLM_KEY")
        assert config.get_api_key() == "explicit"
