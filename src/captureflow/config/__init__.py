"""Configuration exports."""

from captureflow.config.loader import DEFAULT_CONFIG_PATH, load_app_config
from captureflow.config.models import (
    AppConfig,
    AttemptConfig,
    DraftConfig,
    DraftValidationConfig,
    PersistenceConfig,
    PipelineConfig,
    RemoteServiceConfig,
    RetentionConfig,
    RetryConfig,
)

__all__ = [
    "AppConfig",
    "AttemptConfig",
    "DEFAULT_CONFIG_PATH",
    "DraftConfig",
    "DraftValidationConfig",
    "PersistenceConfig",
    "PipelineConfig",
    "RemoteServiceConfig",
    "RetentionConfig",
    "RetryConfig",
    "load_app_config",
]
