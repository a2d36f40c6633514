"""
Engine configuration data classes.

Settings come from the environment or from a YAML file. The API token is
only ever taken from the environment.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from core.exceptions import ValidationError
from .environment import EnvironmentConfig


@dataclass
class ApiConfig:
    """QA API connection settings."""
    base_url: str
    token: Optional[str] = None
    timeout: int = 30


@dataclass
class BufferConfig:
    """Result edit buffer settings."""
    debounce_ms: int = 800


@dataclass
class DashboardConfig:
    page_size: int = 10


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json_output: bool = False


@dataclass
class EngineConfig:
    """Complete configuration of the QA run engine."""
    api: ApiConfig
    buffer: BufferConfig = field(default_factory=BufferConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    current_user: Optional[str] = None

    def __post_init__(self):
        details = {}
        if not self.api.base_url:
            details['api.base_url'] = 'required'
        if self.api.timeout <= 0:
            details['api.timeout'] = 'must be > 0'
        if self.buffer.debounce_ms < 0:
            details['buffer.debounce_ms'] = 'must be >= 0'
        if self.dashboard.page_size < 1:
            details['dashboard.page_size'] = 'must be >= 1'
        if details:
            raise ValidationError("Invalid engine configuration", details=details)

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Create config from environment variables."""
        EnvironmentConfig.reload()
        return cls(
            api=ApiConfig(
                base_url=EnvironmentConfig.QA_API_URL,
                token=EnvironmentConfig.QA_API_TOKEN,
                timeout=EnvironmentConfig.QA_API_TIMEOUT,
            ),
            buffer=BufferConfig(debounce_ms=EnvironmentConfig.QA_DEBOUNCE_MS),
            dashboard=DashboardConfig(page_size=EnvironmentConfig.QA_PAGE_SIZE),
            logging=LoggingConfig(
                level=EnvironmentConfig.LOG_LEVEL,
                json_output=EnvironmentConfig.LOG_FORMAT.lower() == "json",
            ),
            current_user=EnvironmentConfig.QA_CURRENT_USER,
        )

    @classmethod
    def load_from_yaml(cls, yaml_path: str) -> 'EngineConfig':
        """Load engine configuration from a YAML file."""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineConfig':
        """Create EngineConfig from a dictionary.

        Missing keys fall back to the environment.
        """
        EnvironmentConfig.reload()
        api_data = data.get('api', {})
        buffer_data = data.get('buffer', {})
        dashboard_data = data.get('dashboard', {})
        logging_data = data.get('logging', {})

        return cls(
            api=ApiConfig(
                base_url=api_data.get('base_url', EnvironmentConfig.QA_API_URL),
                token=EnvironmentConfig.QA_API_TOKEN,
                timeout=int(api_data.get('timeout', EnvironmentConfig.QA_API_TIMEOUT)),
            ),
            buffer=BufferConfig(
                debounce_ms=int(buffer_data.get('debounce_ms', EnvironmentConfig.QA_DEBOUNCE_MS))
            ),
            dashboard=DashboardConfig(
                page_size=int(dashboard_data.get('page_size', EnvironmentConfig.QA_PAGE_SIZE))
            ),
            logging=LoggingConfig(
                level=logging_data.get('level', EnvironmentConfig.LOG_LEVEL),
                json_output=bool(logging_data.get(
                    'json', EnvironmentConfig.LOG_FORMAT.lower() == "json"
                )),
            ),
            current_user=data.get('current_user', EnvironmentConfig.QA_CURRENT_USER),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the config. The token is never included."""
        return {
            'api': {'base_url': self.api.base_url, 'timeout': self.api.timeout},
            'buffer': {'debounce_ms': self.buffer.debounce_ms},
            'dashboard': {'page_size': self.dashboard.page_size},
            'logging': {'level': self.logging.level, 'json': self.logging.json_output},
            'current_user': self.current_user,
        }
