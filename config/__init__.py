from .base import Config, DevelopmentConfig, ProductionConfig, TestingConfig
from .secrets import SecretsConfig, SecretsConfigError, load_secrets

__all__ = [
    "Config",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
    "SecretsConfig",
    "SecretsConfigError",
    "load_secrets",
]
