"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML file (~/.storesync/config.yaml), a .env file and
environment variables, plus in-process overrides for tests. The collected
tuning knobs are exposed as a `ResilienceSettings` object.
"""

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".storesync"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "STORESYNC_"

_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def _flatten(data: Dict[str, Any], parent: str = "") -> Dict[str, Any]:
    """Turns nested YAML mappings into dotted keys ('cache': {'ttl': 1} -> 'cache.ttl')."""
    flat = {}
    for key, value in data.items():
        dotted = f"{parent}.{key}" if parent else str(key)
        if isinstance(value, dict):
            flat.update(_flatten(value, dotted))
        else:
            flat[dotted] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None, force: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Test overrides (set_config_for_testing)
    2. Environment Variables (STORESYNC_CACHE_TTL_SECONDS for 'cache.ttl_seconds')
    3. .env file
    4. YAML configuration file
    5. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        force: Reload even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not force:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a mapping.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    _loaded = True
    logger.debug("Configuration loading process completed.")


def env_var_name(key: str) -> str:
    return ENV_PREFIX + key.upper().replace('.', '_').replace('-', '_')


def _coerce(value: str) -> Any:
    lowered = value.strip().lower()
    if lowered == 'true':
        return True
    if lowered == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by dotted key.

    Args:
        key: The configuration key, e.g. 'cache.ttl_seconds'.
        default: Default value if the key is not found.

    Returns:
        The configuration value.
    """
    if key in _test_config:
        return _test_config[key]

    if not _loaded:
        load_configuration()

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values that override every other source."""
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


@dataclass(frozen=True)
class ResilienceSettings:
    """Every tuning knob of the data-access layer, with production defaults."""
    cache_max_items: int = 100
    cache_ttl_seconds: float = 300.0
    rate_limit_max_tokens: float = 100.0
    rate_limit_refill_rate: float = 10.0
    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_attempt_timeout: float = 5.0
    retry_jitter: float = 0.0
    queue_max_size: int = 100
    queue_replay_delay: float = 0.1
    queue_directory: str = str(DEFAULT_CONFIG_DIR / "offline_queue")
    firebase_credentials: Optional[str] = None
    firebase_project_id: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    log_file: Optional[str] = None
    log_max_bytes: int = 5 * 1024 * 1024
    log_backup_count: int = 3

    @classmethod
    def from_config(cls) -> "ResilienceSettings":
        defaults = cls()
        return cls(
            cache_max_items=int(get_config('cache.max_items', defaults.cache_max_items)),
            cache_ttl_seconds=float(get_config('cache.ttl_seconds', defaults.cache_ttl_seconds)),
            rate_limit_max_tokens=float(get_config('rate_limit.max_tokens', defaults.rate_limit_max_tokens)),
            rate_limit_refill_rate=float(get_config('rate_limit.refill_rate', defaults.rate_limit_refill_rate)),
            retry_max_retries=int(get_config('retry.max_retries', defaults.retry_max_retries)),
            retry_base_delay=float(get_config('retry.base_delay', defaults.retry_base_delay)),
            retry_attempt_timeout=float(get_config('retry.attempt_timeout', defaults.retry_attempt_timeout)),
            retry_jitter=float(get_config('retry.jitter', defaults.retry_jitter)),
            queue_max_size=int(get_config('queue.max_size', defaults.queue_max_size)),
            queue_replay_delay=float(get_config('queue.replay_delay', defaults.queue_replay_delay)),
            queue_directory=str(get_config('queue.directory', defaults.queue_directory)),
            firebase_credentials=get_config('firebase.credentials', os.environ.get('GOOGLE_APPLICATION_CREDENTIALS')),
            firebase_project_id=get_config('firebase.project_id'),
            log_level=str(get_config('logging.level', defaults.log_level)),
            log_format=str(get_config('logging.format', defaults.log_format)),
            log_file=get_config('logging.file'),
            log_max_bytes=int(get_config('logging.max_bytes', defaults.log_max_bytes)),
            log_backup_count=int(get_config('logging.backup_count', defaults.log_backup_count)),
        )

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
