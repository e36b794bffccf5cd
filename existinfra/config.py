"""Configuration management for existinfra.

Configuration is loaded from the following sources, highest precedence first:
1. Values in the configuration file (the explicitly passed one, otherwise
   the first existing default configuration file)
2. Environment variables (``EXISTINFRA_*``, a ``.env`` file is honoured)
3. Default values
"""
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger("existinfra.config")

DEFAULT_CONFIG_PATHS = [
    Path("/etc/existinfra/config.yaml"),
    Path("~/.config/existinfra/config.yaml").expanduser(),
    Path("existinfra.yaml").absolute(),
]


def _env(name: str, default: Any, cast: Callable[[str], Any] = str) -> Callable[[], Any]:
    def factory():
        value = os.getenv(name)
        if value is None or value == "":
            return default
        return cast(value)
    return factory


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class SSHConfig(BaseModel):
    """SSH connection configuration."""
    user: str = Field(
        default_factory=_env("EXISTINFRA_SSH_USER", "root"),
        description="Default SSH username"
    )
    key_path: Optional[str] = Field(
        default_factory=_env("EXISTINFRA_SSH_KEY_PATH", "~/.ssh/id_rsa"),
        description="Path to SSH private key"
    )
    port: int = Field(
        default_factory=_env("EXISTINFRA_SSH_PORT", 22, int),
        description="SSH port number"
    )
    connect_timeout: float = Field(
        default_factory=_env("EXISTINFRA_SSH_CONNECT_TIMEOUT", 10.0, float),
        description="SSH connection timeout in seconds"
    )
    command_timeout: Optional[float] = Field(
        default_factory=_env("EXISTINFRA_SSH_CMD_TIMEOUT", None, float),
        description="Default command timeout in seconds (None for no timeout)"
    )
    use_sudo: bool = Field(
        default_factory=_env("EXISTINFRA_SSH_USE_SUDO", False, _as_bool),
        description="Run commands through sudo when the SSH user is not root"
    )

    @field_validator('key_path')
    @classmethod
    def expand_key_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand the user home directory in the key path."""
        return os.path.expanduser(v) if v else v


class ExecutorConfig(BaseModel):
    """Plan execution configuration."""
    max_workers: int = Field(
        default_factory=_env("EXISTINFRA_MAX_WORKERS", 4, int),
        description="Maximum number of resources applied concurrently"
    )
    rollback: bool = Field(
        default_factory=_env("EXISTINFRA_ROLLBACK", False, _as_bool),
        description="Undo applied resources when a plan fails"
    )

    @field_validator('max_workers')
    @classmethod
    def positive_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_workers must be at least 1")
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(
        default_factory=_env("EXISTINFRA_LOG_LEVEL", "INFO"),
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    file: Optional[str] = Field(
        default_factory=_env("EXISTINFRA_LOG_FILE", None),
        description="Path to log file (if None, logs to stderr only)"
    )
    max_size_mb: int = Field(
        default_factory=_env("EXISTINFRA_LOG_MAX_SIZE_MB", 100, int),
        description="Maximum log file size in MB before rotation"
    )
    backup_count: int = Field(
        default_factory=_env("EXISTINFRA_LOG_BACKUP_COUNT", 5, int),
        description="Number of backup log files to keep"
    )


class ControllerConfig(BaseModel):
    """ExistingInfraCluster reconciler configuration."""
    group: str = Field(default="cluster.weave.works", description="API group of the custom resource")
    version: str = Field(default="v1alpha3", description="API version of the custom resource")
    plural: str = Field(default="existinfraclusters", description="Plural name of the custom resource")
    namespace: str = Field(
        default_factory=_env("EXISTINFRA_NAMESPACE", "default"),
        description="Namespace watched by the reconciler"
    )
    conflict_retries: int = Field(
        default_factory=_env("EXISTINFRA_CONFLICT_RETRIES", 5, int),
        description="Attempts of an optimistic concurrency update before giving up"
    )
    retry_delay: float = Field(
        default_factory=_env("EXISTINFRA_RETRY_DELAY", 0.01, float),
        description="Initial delay between conflicting updates in seconds"
    )


class APIConfig(BaseModel):
    """HTTP API configuration."""
    api_key: str = Field(
        default_factory=_env("EXISTINFRA_API_KEY", "existinfra-secret"),
        description="Value expected in the X-API-Key header"
    )
    host: str = Field(default_factory=_env("EXISTINFRA_API_HOST", "127.0.0.1"))
    port: int = Field(default_factory=_env("EXISTINFRA_API_PORT", 8000, int))


class Settings(BaseModel):
    """existinfra configuration."""
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    controller: ControllerConfig = Field(default_factory=ControllerConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    model_config = {"extra": "ignore"}

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None) -> 'Settings':
        """Load configuration from a file, falling back to the default paths."""
        config_data: Dict[str, Any] = {}

        if config_path:
            config_path = Path(config_path).expanduser().absolute()
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            config_data = cls._load_config_file(config_path)
        else:
            for path in DEFAULT_CONFIG_PATHS:
                path = path.expanduser().absolute()
                if path.exists():
                    config_data = cls._load_config_file(path)
                    break

        return cls(**config_data)

    @classmethod
    def _load_config_file(cls, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML file."""
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return {}
        logger.debug(f"Loaded configuration from {path}")
        return data

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to a file."""
        path = Path(path).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.model_dump(exclude_none=True), f, default_flow_style=False, sort_keys=False)


def loaded_from() -> List[str]:
    """Return the default configuration files that exist."""
    return [str(p) for p in DEFAULT_CONFIG_PATHS if p.expanduser().exists()]


# Global configuration instance
_settings: Optional[Settings] = None


def get_settings(config_path: Optional[Union[str, Path]] = None) -> Settings:
    """Get or create the global configuration instance."""
    global _settings
    if _settings is None or config_path is not None:
        _settings = Settings.load(config_path)
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _settings
    _settings = settings
