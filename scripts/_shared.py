"""
Shared utilities for scripts.

Provides common boilerplate: argument parsing, config loading, engine creation.
"""
import argparse
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv
load_dotenv()

from core.config.engine_config import EngineConfig
from core.exceptions import ValidationError
from core.services.metrics.logger import configure_logging
from infrastructure.repository_factory import QaEngine, RepositoryFactory


def create_base_parser(description: str) -> argparse.ArgumentParser:
    """Create argument parser with common --config flag.

    Args:
        description: Script description for help text.

    Returns:
        ArgumentParser with --config already added.
    """
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        '--config',
        default=None,
        help='YAML engine config (default: settings from environment)'
    )
    return parser


def load_engine_config(config_path: Optional[str]) -> EngineConfig:
    """Load engine configuration from YAML or the environment.

    Raises:
        SystemExit: If the file is missing or the config is invalid.
    """
    try:
        if config_path:
            if not Path(config_path).exists():
                print(f"Error: Config file '{config_path}' not found.")
                sys.exit(1)
            return EngineConfig.load_from_yaml(config_path)
        return EngineConfig.from_env()
    except ValidationError as exc:
        print(f"Error: {exc}")
        for field_name, problem in exc.details.items():
            print(f"  {field_name}: {problem}")
        sys.exit(1)


def create_engine(config: EngineConfig) -> QaEngine:
    """Configure logging and wire the engine services.

    The API token is always read from the QA_API_TOKEN environment variable.
    """
    configure_logging(config.logging.level, json_output=config.logging.json_output)
    if not config.api.token:
        print("Warning: QA_API_TOKEN not set in environment", file=sys.stderr)
    return RepositoryFactory.create_engine(config)
