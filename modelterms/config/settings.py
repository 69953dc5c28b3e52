"""
Configuration management system for modelterms.

Provides a hierarchical configuration system with support for file-based
configuration, environment variables, and runtime updates.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from enum import Enum

from ..core.exceptions import ConfigurationError


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LevelOrder(str, Enum):
    """Canonical ordering of categorical levels found during extraction."""
    SORTED = "sorted"
    FIRST_OCCURRENCE = "first_occurrence"


class MatrixBackend(str, Enum):
    """Array library used for ModelMatrix output."""
    NUMPY = "numpy"
    JAX = "jax"


class FormulaConfig(BaseModel):
    """Formula interpretation settings."""
    model_config = ConfigDict(validate_assignment=True)

    implicit_intercept: bool = True
    interaction_separator: str = " & "
    intercept_name: str = "(Intercept)"


class ExtractionConfig(BaseModel):
    """Schema extraction settings."""
    model_config = ConfigDict(validate_assignment=True, use_enum_values=True)

    level_order: LevelOrder = LevelOrder.SORTED


class ContrastConfig(BaseModel):
    """Contrast coding settings."""
    model_config = ConfigDict(validate_assignment=True)

    default: str = "dummy"

    @field_validator('default')
    @classmethod
    def validate_default(cls, v):
        if not v or not v.strip():
            raise ValueError("default contrast scheme must be a non-empty name")
        return v.strip()


class GenerationConfig(BaseModel):
    """Matrix generation settings."""
    model_config = ConfigDict(validate_assignment=True, use_enum_values=True)

    backend: MatrixBackend = MatrixBackend.NUMPY
    parallel_terms: bool = False
    max_workers: Optional[int] = Field(default=None, validate_default=True)
    warn_non_finite: bool = True

    @field_validator('max_workers', mode='before')
    @classmethod
    def validate_max_workers(cls, v):
        if v is None:
            return min(8, os.cpu_count() or 1)
        return max(1, int(v))


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(validate_assignment=True, use_enum_values=True)

    level: LogLevel = LogLevel.WARNING
    file_logging: bool = False
    log_file: Optional[Path] = None
    console_logging: bool = True
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ModelTermsConfig(BaseModel):
    """Main configuration class for modelterms."""
    model_config = ConfigDict(validate_assignment=True, use_enum_values=True)

    formulas: FormulaConfig = Field(default_factory=FormulaConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    contrasts: ContrastConfig = Field(default_factory=ContrastConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def __init__(self, config_file: Optional[Union[str, Path]] = None, **kwargs):
        """
        Initialize configuration.

        Args:
            config_file: Path to YAML configuration file
            **kwargs: Override specific configuration sections
        """
        config_data: Dict[str, Any] = {}
        if config_file:
            config_data = _load_config_file(config_file)

        # Environment variables override the file
        for section, values in _load_environment_variables().items():
            config_data.setdefault(section, {}).update(values)

        # Explicit kwargs override everything
        config_data.update(kwargs)

        try:
            super().__init__(**config_data)
        except ValidationError as e:
            raise ConfigurationError(detail=str(e)) from e

        self._create_directories()

    def _create_directories(self):
        """Create the log directory when file logging is enabled."""
        if self.logging.file_logging and self.logging.log_file:
            Path(self.logging.log_file).parent.mkdir(parents=True, exist_ok=True)

    def save_config(self, config_file: Union[str, Path]) -> None:
        """Save current configuration to YAML file."""
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False, indent=2)

    def update(self, **kwargs) -> None:
        """
        Update configuration values.

        Keys are either section names or dotted 'section.key' paths, the
        latter passed through ``**{"generation.backend": "jax"}``.
        """
        for key, value in kwargs.items():
            try:
                if '.' in key:
                    section, subkey = key.split('.', 1)
                    section_obj = getattr(self, section, None)
                    if not isinstance(section_obj, BaseModel) or subkey not in type(section_obj).model_fields:
                        raise ConfigurationError(config_key=key, detail="unknown key")
                    setattr(section_obj, subkey, value)
                elif key in type(self).model_fields:
                    setattr(self, key, value)
                else:
                    raise ConfigurationError(config_key=key, detail="unknown key")
            except ValidationError as e:
                raise ConfigurationError(config_key=key, detail=str(e)) from e


def _load_config_file(config_file: Union[str, Path]) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    config_path = Path(config_file)
    if not config_path.exists():
        raise ConfigurationError(config_key=str(config_path), detail="configuration file not found")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(config_key=str(config_path), detail="top level must be a mapping")
    return data


def _load_environment_variables() -> Dict[str, Dict[str, Any]]:
    """Load configuration from environment variables."""
    config: Dict[str, Dict[str, Any]] = {}

    env_mappings = {
        'MODELTERMS_LOG_LEVEL': ('logging', 'level'),
        'MODELTERMS_LEVEL_ORDER': ('extraction', 'level_order'),
        'MODELTERMS_DEFAULT_CONTRASTS': ('contrasts', 'default'),
        'MODELTERMS_BACKEND': ('generation', 'backend'),
        'MODELTERMS_MAX_WORKERS': ('generation', 'max_workers'),
    }

    for env_var, (section, key) in env_mappings.items():
        value = os.getenv(env_var)
        if value is not None:
            if key == 'max_workers':
                try:
                    value = int(value)
                except ValueError as e:
                    raise ConfigurationError(config_key=env_var, detail=f"expected an integer, got {value!r}") from e
            elif key == 'level':
                value = value.upper()
            config.setdefault(section, {})[key] = value

    return config


# Default configuration instance
_default_config: Optional[ModelTermsConfig] = None

def get_default_config() -> ModelTermsConfig:
    """Get the default configuration instance."""
    global _default_config
    if _default_config is None:
        _default_config = ModelTermsConfig()
    return _default_config


def reset_config() -> None:
    """Drop the default configuration so the next access rebuilds it."""
    global _default_config
    _default_config = None
