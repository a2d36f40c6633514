"""
Configuration management - environment variables and YAML files.
"""
from .environment import EnvironmentConfig
from .engine_config import (
    ApiConfig,
    BufferConfig,
    DashboardConfig,
    LoggingConfig,
    EngineConfig,
)

__all__ = [
    'EnvironmentConfig',
    'ApiConfig',
    'BufferConfig',
    'DashboardConfig',
    'LoggingConfig',
    'EngineConfig',
]
