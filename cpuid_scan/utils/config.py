"""
Configuration management with .env file support.

Loads configuration from:
1. .env file in project root or working directory (if exists)
2. Environment variables (override .env)

Usage:
    from cpuid_scan.utils.config import get_config
    level = get_config("CPUID_SCAN_LOG_LEVEL", "WARNING")
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Configuration cache
_config_cache: dict[str, str] = {}
_env_loaded = False


def _find_env_file() -> Path | None:
    """Find .env file by searching up from the package, then the working directory."""
    current = Path(__file__).resolve().parent

    # Search up to 5 levels
    for _ in range(5):
        env_file = current / ".env"
        if env_file.exists():
            return env_file

        parent = current.parent
        if parent == current:
            break
        current = parent

    cwd_env = Path.cwd() / ".env"
    if cwd_env.exists():
        return cwd_env

    return None


def _parse_env_file(env_path: Path) -> dict[str, str]:
    """
    Parse a .env file into a dictionary.

    Supports:
    - KEY=value
    - KEY="value with spaces"
    - KEY='value with spaces'
    - # comments
    - Empty lines
    """
    config = {}

    try:
        with open(env_path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()

                if not line or line.startswith("#"):
                    continue

                if "=" not in line:
                    logger.warning(f".env line {line_num}: Invalid format (no '=')")
                    continue

                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()

                if (value.startswith('"') and value.endswith('"')) or \
                   (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]

                if key:
                    config[key] = value

    except OSError as e:
        logger.warning(f"Failed to parse .env file: {e}")

    return config


def load_env(env_path: Path | None = None):
    """Load configuration from a .env file (searched for when not given)."""
    global _env_loaded, _config_cache

    if _env_loaded:
        return

    env_file = env_path or _find_env_file()
    if env_file:
        logger.debug(f"Loading configuration from: {env_file}")
        _config_cache = _parse_env_file(env_file)
        logger.debug(f"Loaded {len(_config_cache)} config values from .env")
    else:
        logger.debug("No .env file found")

    _env_loaded = True


def reset_config():
    """Forget loaded .env values so the next lookup reloads them."""
    global _env_loaded, _config_cache
    _config_cache = {}
    _env_loaded = False


def get_config(key: str, default: str | None = None) -> str | None:
    """
    Get a configuration value.

    Checks environment variables first, then .env file.

    Args:
        key: Configuration key name
        default: Default value if not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return env_value

    load_env()

    return _config_cache.get(key, default)


def get_config_int(key: str, default: int = 0) -> int:
    """Get an integer configuration value."""
    value = get_config(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {key}: {value!r}")
        return default


def get_config_list(key: str) -> list[str]:
    """Get a comma-separated configuration value as a list of stripped items."""
    value = get_config(key)
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def get_max_file_size() -> int:
    """Maximum binary size in bytes accepted by the container reader."""
    return get_config_int("CPUID_SCAN_MAX_FILE_SIZE_MB", 500) * 1024 * 1024


def get_ignored_features() -> list[str]:
    """Features hidden from every report, upper-cased."""
    return [feature.upper() for feature in get_config_list("CPUID_SCAN_IGNORE")]


# Upper bound for CPUID_SCAN_JOBS and --jobs
MAX_JOBS = 64

# Available configuration keys
CONFIG_KEYS = {
    "CPUID_SCAN_LOG_LEVEL": "Logging level (DEBUG, INFO, WARNING, ERROR)",
    "CPUID_SCAN_MAX_FILE_SIZE_MB": "Largest binary accepted, in megabytes (default: 500)",
    "CPUID_SCAN_JOBS": "Worker threads used to scan code sections (default: 1)",
    "CPUID_SCAN_IGNORE": "Comma-separated CPUID features hidden from every report",
}


def list_config_keys() -> dict[str, str]:
    """Return available configuration keys and descriptions."""
    return CONFIG_KEYS.copy()


def get_config_status() -> dict[str, dict]:
    """
    Get status of all configuration keys.

    Returns:
        Dict with key -> {set: bool, source: str, value: str}
    """
    load_env()
    status = {}

    for key in CONFIG_KEYS:
        env_value = os.environ.get(key)
        file_value = _config_cache.get(key)

        if env_value is not None:
            status[key] = {"set": True, "source": "environment", "value": env_value}
        elif file_value is not None:
            status[key] = {"set": True, "source": ".env file", "value": file_value}
        else:
            status[key] = {"set": False, "source": None, "value": None}

    return status
