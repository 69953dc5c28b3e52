"""Configuration management for modelterms."""

from .settings import (
    ModelTermsConfig,
    FormulaConfig,
    ExtractionConfig,
    ContrastConfig,
    GenerationConfig,
    LoggingConfig,
    LevelOrder,
    MatrixBackend,
    LogLevel,
    get_default_config,
    reset_config,
)

__all__ = [
    "ModelTermsConfig",
    "FormulaConfig",
    "ExtractionConfig",
    "ContrastConfig",
    "GenerationConfig",
    "LoggingConfig",
    "LevelOrder",
    "MatrixBackend",
    "LogLevel",
    "get_default_config",
    "reset_config",
]
