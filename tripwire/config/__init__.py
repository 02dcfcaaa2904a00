"""Configuration module."""

from .environments import DevelopmentConfig, ProductionConfig, TestingConfig
from .features import FeatureFlags
from .loader import create_test_config, load_config
from .settings import Settings

__all__ = [
    "Settings",
    "load_config",
    "create_test_config",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
    "FeatureFlags",
]
