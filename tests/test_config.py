"""Tests for configuration loading"""
import pytest

from codebrain.config import BrainConfig, OutputConfig, deep_merge, load_config, save_config


class TestBrainConfig:
    """Tests for BrainConfig defaults and merging."""

    def test_defaults(self):
        """Defaults match the documented settings."""
        config = BrainConfig()
        assert config.enabled
        assert config.auto_learn
        assert config.auto_commit
        assert config.commit_threshold == 10
        assert config.max_nodes == 5000
        assert config.max_deltas == 500
        assert config.prune.enabled
        assert config.brain_dir == ".codebrain"
        assert config.debounce_ms == 500
        assert config.prune.threshold == 0.1
        assert config.prune.unused_days == 90
        assert config.output.max_tokens == 4000
        assert config.output.format == "compact"
        assert config.events.webhook_url is None
        assert config.events.types == ["*"]

    def test_from_dict_partial_override(self):
        """Nested sections merge key by key; unknown keys are ignored."""
        config = BrainConfig.from_dict({
            "commit_threshold": 3,
            "prune": {"threshold": 0.05},
            "output": {"format": "natural"},
            "colour": "blue",
        })
        assert config.commit_threshold == 3
        assert config.prune.threshold == 0.05
        assert config.prune.unused_days == 90
        assert config.output.format == "natural"
        assert config.output.max_tokens == 4000

    def test_invalid_output_format(self):
        """Unknown output formats are rejected."""
        with pytest.raises(ValueError):
            OutputConfig(format="xml")

    def test_deep_merge_does_not_mutate(self):
        """deep_merge returns a new dict."""
        base = {"a": {"b": 1}}
        merged = deep_merge(base, {"a": {"c": 2}})
        assert merged == {"a": {"b": 1, "c": 2}}
        assert base == {"a": {"b": 1}}


class TestLoadConfig:
    """Tests for YAML loading."""

    def test_missing_file(self, tmp_path):
        """A missing file yields defaults."""
        assert load_config(tmp_path / "config.yaml") == BrainConfig()

    def test_round_trip(self, tmp_path):
        """save_config output loads back unchanged."""
        path = tmp_path / "nested" / "config.yaml"
        config = BrainConfig(max_nodes=42)
        config.events.webhook_url = "https://example.com/hook"

        save_config(config, path)

        assert load_config(path) == config

    def test_malformed_yaml(self, tmp_path):
        """Broken YAML falls back to defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("max_nodes: [unclosed\n")
        assert load_config(path) == BrainConfig()

    def test_non_mapping(self, tmp_path):
        """A YAML list is ignored."""
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        assert load_config(path) == BrainConfig()

    def test_empty_file(self, tmp_path):
        """An empty file yields defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == BrainConfig()
