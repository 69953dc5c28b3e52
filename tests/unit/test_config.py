"""
Tests for the configuration system.
"""

import os

import pytest
import yaml

import modelterms
from modelterms.config.settings import (
    LevelOrder,
    MatrixBackend,
    ModelTermsConfig,
    get_default_config,
    reset_config,
)
from modelterms.core.exceptions import ConfigurationError


pytestmark = pytest.mark.unit


class TestDefaults:
    """Default configuration values."""

    def test_section_defaults(self, test_config):
        """Every section has usable defaults."""
        assert test_config.formulas.implicit_intercept is True
        assert test_config.formulas.interaction_separator == " & "
        assert test_config.formulas.intercept_name == "(Intercept)"
        assert test_config.extraction.level_order == LevelOrder.SORTED
        assert test_config.contrasts.default == "dummy"
        assert test_config.generation.backend == MatrixBackend.NUMPY
        assert test_config.generation.parallel_terms is False
        assert test_config.logging.level == "WARNING"

    def test_max_workers_defaults_to_cpu_count(self, test_config):
        """max_workers is filled from the CPU count, capped at 8."""
        assert test_config.generation.max_workers == min(8, os.cpu_count() or 1)

    def test_max_workers_at_least_one(self):
        """Non-positive worker counts are raised to one."""
        config = ModelTermsConfig(generation={"max_workers": 0})
        assert config.generation.max_workers == 1

    def test_kwargs_override_sections(self):
        """Section dicts passed as keywords are validated."""
        config = ModelTermsConfig(contrasts={"default": " effects "})
        assert config.contrasts.default == "effects"


class TestValidation:
    """Invalid values are reported as ConfigurationError."""

    def test_invalid_enum_value(self):
        """Unknown enum values are rejected."""
        with pytest.raises(ConfigurationError):
            ModelTermsConfig(extraction={"level_order": "alphabetical"})

    def test_empty_contrast_name(self):
        """An empty default scheme name is rejected."""
        with pytest.raises(ConfigurationError):
            ModelTermsConfig(contrasts={"default": "  "})

    def test_error_names_the_key(self):
        """Update failures mention the offending key."""
        config = ModelTermsConfig()
        with pytest.raises(ConfigurationError) as exc_info:
            config.update(**{"generation.backend": "cuda"})
        assert "generation.backend" in str(exc_info.value)


class TestEnvironment:
    """Environment variable overrides."""

    def test_environment_overrides(self, monkeypatch):
        """MODELTERMS_* variables override defaults."""
        monkeypatch.setenv("MODELTERMS_LOG_LEVEL", "debug")
        monkeypatch.setenv("MODELTERMS_LEVEL_ORDER", "first_occurrence")
        monkeypatch.setenv("MODELTERMS_DEFAULT_CONTRASTS", "helmert")
        monkeypatch.setenv("MODELTERMS_BACKEND", "jax")
        monkeypatch.setenv("MODELTERMS_MAX_WORKERS", "3")

        config = ModelTermsConfig()
        assert config.logging.level == "DEBUG"
        assert config.extraction.level_order == "first_occurrence"
        assert config.contrasts.default == "helmert"
        assert config.generation.backend == "jax"
        assert config.generation.max_workers == 3

    def test_non_integer_workers(self, monkeypatch):
        """A non-integer worker count is a configuration error."""
        monkeypatch.setenv("MODELTERMS_MAX_WORKERS", "many")
        with pytest.raises(ConfigurationError):
            ModelTermsConfig()


class TestFiles:
    """YAML configuration files."""

    def test_load_from_yaml(self, tmp_path):
        """Values in the file are applied."""
        path = tmp_path / "modelterms.yaml"
        path.write_text(yaml.safe_dump({
            "formulas": {"intercept_name": "const"},
            "generation": {"parallel_terms": True},
        }))
        config = ModelTermsConfig(config_file=path)
        assert config.formulas.intercept_name == "const"
        assert config.generation.parallel_terms is True

    def test_environment_beats_file(self, tmp_path, monkeypatch):
        """Environment variables override file values."""
        path = tmp_path / "modelterms.yaml"
        path.write_text(yaml.safe_dump({"contrasts": {"default": "effects"}}))
        monkeypatch.setenv("MODELTERMS_DEFAULT_CONTRASTS", "seqdiff")
        assert ModelTermsConfig(config_file=path).contrasts.default == "seqdiff"

    def test_save_and_reload(self, tmp_path):
        """A saved configuration loads back with the same values."""
        config = ModelTermsConfig(
            extraction={"level_order": "first_occurrence"},
            generation={"backend": "jax", "max_workers": 2},
        )
        path = tmp_path / "nested" / "config.yaml"
        config.save_config(path)

        reloaded = ModelTermsConfig(config_file=path)
        assert reloaded.model_dump() == config.model_dump()

    def test_missing_file(self, tmp_path):
        """A missing file is a configuration error."""
        with pytest.raises(ConfigurationError):
            ModelTermsConfig(config_file=tmp_path / "absent.yaml")

    def test_non_mapping_file(self, tmp_path):
        """The top level of the file must be a mapping."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            ModelTermsConfig(config_file=path)


class TestUpdate:
    """Runtime updates."""

    def test_dotted_update(self, test_config):
        """Dotted keys set a single field."""
        test_config.update(**{"formulas.implicit_intercept": False})
        assert test_config.formulas.implicit_intercept is False

    def test_section_update(self, test_config):
        """Section keys replace a whole section."""
        test_config.update(contrasts={"default": "effects"})
        assert test_config.contrasts.default == "effects"

    def test_unknown_keys(self, test_config):
        """Unknown sections and fields are rejected."""
        with pytest.raises(ConfigurationError):
            test_config.update(nonsense=1)
        with pytest.raises(ConfigurationError):
            test_config.update(**{"formulas.nonsense": 1})


class TestGlobalConfig:
    """The process-wide default configuration."""

    def test_default_is_shared(self):
        """get_default_config returns one instance until reset."""
        first = get_default_config()
        assert get_default_config() is first
        reset_config()
        assert get_default_config() is not first

    def test_top_level_configure(self):
        """modelterms.configure updates the global configuration."""
        modelterms.configure(**{"contrasts.default": "helmert"})
        assert modelterms.get_config().contrasts.default == "helmert"
