"""
Configuration management for modelview.

Handles loading and saving user configuration from:
- $MODELVIEW_CONFIG, if set (JSON or YAML)
- XDG config directory: ~/.config/modelview/config.json
- Fallback: ~/.modelview/config.json
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MODELVIEW_CONFIG"


@dataclass
class ExecutionConfig:
    """Defaults for the reference execution driver."""
    partition_size: int = 1000
    max_workers: Optional[int] = None
    on_partition_error: str = "raise"


@dataclass
class CLIConfig:
    """CLI default options."""
    verbose: bool = False
    color: bool = True
    # Modules imported before every command so their views are registered
    modules: List[str] = field(default_factory=list)


@dataclass
class ModelViewConfig:
    """Main modelview configuration."""
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    cli: CLIConfig = field(default_factory=CLIConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "execution": asdict(self.execution),
            "cli": asdict(self.cli),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelViewConfig':
        """Create from dictionary."""
        execution_data = data.get("execution", {}) or {}
        cli_data = data.get("cli", {}) or {}
        return cls(
            execution=ExecutionConfig(**execution_data),
            cli=CLIConfig(**cli_data),
        )


def get_config_path() -> Path:
    """
    Get configuration file path.

    1. $MODELVIEW_CONFIG if set
    2. $XDG_CONFIG_HOME/modelview/config.json (usually ~/.config/modelview/config.json)
    3. Fallback: ~/.modelview/config.json

    Returns:
        Path to config file
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()

    xdg_config_home = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    if xdg_config_home.exists():
        config_dir = xdg_config_home / "modelview"
    else:
        config_dir = Path.home() / ".modelview"

    return config_dir / "config.json"


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in (".yaml", ".yml")


def load_config() -> ModelViewConfig:
    """
    Load configuration from file.

    Returns:
        ModelViewConfig with loaded values, or defaults when the file is
        missing or cannot be parsed
    """
    config_path = get_config_path()

    if not config_path.exists():
        return ModelViewConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) if _is_yaml(config_path) else json.load(f)
        return ModelViewConfig.from_dict(data or {})
    except (json.JSONDecodeError, yaml.YAMLError, OSError, TypeError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        logger.warning("Using default configuration")
        return ModelViewConfig()


def save_config(config: ModelViewConfig) -> Path:
    """
    Save configuration to file.

    Args:
        config: Configuration to save

    Returns:
        Path the configuration was written to
    """
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        if _is_yaml(config_path):
            yaml.safe_dump(config.to_dict(), f, sort_keys=False)
        else:
            json.dump(config.to_dict(), f, indent=2)

    logger.info(f"Configuration saved to {config_path}")
    return config_path


def update_config(
    partition_size: Optional[int] = None,
    max_workers: Optional[int] = None,
    on_partition_error: Optional[str] = None,
    cli_verbose: Optional[bool] = None,
    cli_color: Optional[bool] = None,
    cli_modules: Optional[List[str]] = None,
) -> ModelViewConfig:
    """
    Update configuration.

    Only updates provided values, leaving others unchanged.
    """
    config = load_config()

    if partition_size is not None:
        config.execution.partition_size = partition_size
    if max_workers is not None:
        config.execution.max_workers = max_workers
    if on_partition_error is not None:
        config.execution.on_partition_error = on_partition_error

    if cli_verbose is not None:
        config.cli.verbose = cli_verbose
    if cli_color is not None:
        config.cli.color = cli_color
    if cli_modules is not None:
        config.cli.modules = cli_modules

    save_config(config)
    return config
