"""Config module exports."""

from devsql.config.loader import load_config
from devsql.config.models import (
    DevsqlConfig,
    LoggingConfig,
    MutationConfig,
    OutputConfig,
    SourcesConfig,
)

__all__ = [
    "load_config",
    "DevsqlConfig",
    "LoggingConfig",
    "MutationConfig",
    "OutputConfig",
    "SourcesConfig",
]
