"""Tests for analysis options and the TOML configuration manager."""

import logging
from pathlib import Path

import pytest
import toml

from decypher_cli.config import (
    AffinityConfig,
    AnalysisConfig,
    ExtractionConfig,
    ResolutionConfig,
    StringsConfig,
    ToolsConfig,
)
from decypher_cli.config_manager import (
    config_from_dict,
    default_config_dict,
    load_analysis_config,
    save_analysis_config,
)
from decypher_cli.errors import ConfigurationError
from decypher_cli.modules import default_modules


class TestOptionGroups:
    """Tests for option validation."""

    def test_defaults(self):
        """Test the documented defaults."""
        config = AnalysisConfig()

        assert config.resolution.max_passes == 10
        assert config.resolution.deferred_initializers == ("lazy_init",)
        assert config.extraction.acceptance_threshold == 0.3
        assert config.extraction.min_length == 60
        assert (config.affinity.w1, config.affinity.w2, config.affinity.w3) == (0.4, 0.3, 0.3)
        assert config.strings.config_max_length == 200
        assert config.strings.relevance_threshold == 0.3
        assert "claude-sonnet" in config.strings.config_patterns
        assert config.tools.schema_builders == ("z", "k")
        assert config.modules is None

    @pytest.mark.parametrize("kwargs", [
        {"acceptance_threshold": 1.5},
        {"acceptance_threshold": -0.1},
        {"max_code_char_ratio": 0},
        {"keyword_bonus": -1},
        {"length_tiers": ((60, -0.1),)},
    ])
    def test_invalid_extraction(self, kwargs):
        """Test out-of-range extraction options."""
        with pytest.raises(ConfigurationError):
            ExtractionConfig(**kwargs)

    @pytest.mark.parametrize("kwargs", [
        {"relevance_threshold": -0.5},
        {"config_max_length": 0},
        {"min_length": -1},
    ])
    def test_invalid_strings(self, kwargs):
        """Test out-of-range string inventory options."""
        with pytest.raises(ConfigurationError):
            StringsConfig(**kwargs)

    def test_invalid_affinity(self):
        """Test negative affinity weights."""
        with pytest.raises(ConfigurationError):
            AffinityConfig(w2=-0.1)

    def test_configuration_error_is_value_error(self):
        """Test callers catching ValueError still see config errors."""
        with pytest.raises(ValueError):
            ResolutionConfig(max_passes=0)

    def test_length_tiers_sorted(self):
        """Test tiers are kept in ascending order."""
        config = ExtractionConfig(length_tiers=((500, 0.3), (60, 0.1)))

        assert config.length_tiers == ((60, 0.1), (500, 0.3))


class TestConfigManager:
    """Tests for loading and saving TOML."""

    def test_missing_file_gives_defaults(self, temp_dir: Path):
        """Test loading a path that does not exist."""
        assert load_analysis_config(temp_dir / "absent.toml") == AnalysisConfig()

    def test_round_trip(self, temp_dir: Path):
        """Test saving then loading gives an equal configuration."""
        config = AnalysisConfig(
            resolution=ResolutionConfig(max_passes=4, deferred_initializers=("init", "boot")),
            extraction=ExtractionConfig(acceptance_threshold=0.5),
            strings=StringsConfig(config_patterns=("REGION",), max_strings=50),
            tools=ToolsConfig(schema_builders=("s",)),
            modules=default_modules(),
        )
        path = save_analysis_config(config, temp_dir / "nested" / "config.toml")

        assert path.exists()
        assert load_analysis_config(path) == config

    def test_default_path(self, isolated_home: Path):
        """Test the default location is used when no path is given."""
        save_analysis_config(AnalysisConfig(affinity=AffinityConfig(threshold=0.5)))

        assert isolated_home.exists()
        assert load_analysis_config().affinity.threshold == 0.5

    def test_default_dict_is_valid_toml(self):
        """Test the default dictionary serializes and reloads."""
        data = toml.loads(toml.dumps(default_config_dict()))

        assert len(data["modules"]) == 8
        assert config_from_dict(data).extraction == ExtractionConfig()

    def test_partial_file(self, temp_dir: Path):
        """Test that omitted options keep their defaults."""
        path = temp_dir / "config.toml"
        path.write_text("[affinity]\nthreshold = 0.6\n", encoding="utf-8")
        config = load_analysis_config(path)

        assert config.affinity.threshold == 0.6
        assert config.affinity.w1 == 0.4
        assert config.extraction == ExtractionConfig()

    def test_unknown_keys_warned(self, caplog):
        """Test that unknown options are ignored with a warning."""
        with caplog.at_level(logging.WARNING, logger="decypher_cli.config_manager"):
            config = config_from_dict({"affinity": {"w9": 1.0}, "extra": {}})

        assert config.affinity == AffinityConfig()
        messages = " ".join(r.getMessage() for r in caplog.records)
        assert "affinity.w9" in messages
        assert "[extra]" in messages

    def test_invalid_toml_gives_defaults(self, temp_dir: Path, caplog):
        """Test unreadable TOML falls back to defaults."""
        path = temp_dir / "broken.toml"
        path.write_text("[affinity\nthreshold = ", encoding="utf-8")

        with caplog.at_level(logging.WARNING):
            config = load_analysis_config(path)

        assert config == AnalysisConfig()
        assert any("using defaults" in r.getMessage() for r in caplog.records)

    def test_out_of_range_value_raises(self):
        """Test invalid values in TOML surface as ConfigurationError."""
        with pytest.raises(ConfigurationError):
            config_from_dict({"extraction": {"acceptance_threshold": 2.0}})

    def test_modules_parsed(self):
        """Test [[modules]] entries."""
        config = config_from_dict({
            "modules": [
                {"name": "net", "keywords": ["socket"], "seed_functions": ["connect"]},
                {"name": "rest", "fallback": True},
            ]
        })

        assert [m.name for m in config.modules] == ["net", "rest"]
        assert config.modules[0].keywords == frozenset({"socket"})
        assert config.modules[1].fallback

    def test_module_without_name(self):
        """Test a nameless module entry is rejected."""
        with pytest.raises(ConfigurationError):
            config_from_dict({"modules": [{"keywords": ["x"]}]})

    def test_custom_signatures(self):
        """Test category signatures and entity patterns from TOML."""
        config = config_from_dict({
            "extraction": {
                "signatures": {"system": ["Act as"]},
                "entities": {"Shell": ["Runs a shell"]},
            }
        })

        assert config.extraction.signatures == {"system": ("Act as",)}
        assert config.extraction.entity_patterns == {"Shell": ("Runs a shell",)}

    def test_inventory_sections(self):
        """Test [strings] and [tools] sections."""
        config = config_from_dict({
            "strings": {"config_patterns": ["REGION"], "min_length": 3},
            "tools": {"schema_builders": ["s", "z"]},
        })

        assert config.strings.config_patterns == ("REGION",)
        assert config.strings.min_length == 3
        assert config.strings.max_strings == 1000
        assert config.tools.schema_builders == ("s", "z")
