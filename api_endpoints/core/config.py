"""Configuration management for api-endpoints."""

import copy
from typing import Any, List, Tuple

from api_endpoints.core.exceptions import ConfigurationError

# Default configuration schema
DEFAULT_CONFIG = {
    "http": {"timeout": 60, "max_workers": 8, "user_agent": "api-endpoints/0.3.0"},
    "rate_limit": {"fallback_wait_ms": 10000, "epsilon_ms": 1, "max_wait_ms": 3600000},  # 1 hour cap
    "batch": {"rate_limit": 50, "pacing_factor": 1.01, "max_rounds": 10},
    "cache": {"enabled": False, "database_path": ":memory:", "default_ttl_seconds": 21600},  # 6 hours
    "discovery": {"base_url": "https://www.googleapis.com/discovery/v1/apis", "ttl_seconds": 21600},
    "auth": {"use_ambient_identity": False, "token_env_var": "API_ENDPOINTS_ACCESS_TOKEN"},
    "logging": {
        "level": "WARNING",
        "parent_logger": None,
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "date_format": "%Y-%m-%d %H:%M:%S",
        "enable_console": True,
        "enable_file": False,
        "file_path": None,
        "max_file_size": 10485760,  # 10MB
        "backup_count": 5,
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge two dictionaries."""
    result = copy.deepcopy(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = deep_merge(result[k], v)
        else:
            result[k] = copy.deepcopy(v)
    return result


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigurationValidator:
    """Validates configuration and provides error reporting."""

    @staticmethod
    def validate_config(config: dict) -> Tuple[bool, List[str]]:
        errors = []
        if not isinstance(config, dict):
            errors.append("Config must be a dictionary.")
            return False, errors
        # Validate http
        http = config.get("http", {})
        if not _is_number(http.get("timeout", None)) or http.get("timeout") <= 0:
            errors.append("http.timeout must be a positive number.")
        if not _is_int(http.get("max_workers", None)) or http.get("max_workers") < 1:
            errors.append("http.max_workers must be a positive integer.")
        if not isinstance(http.get("user_agent", None), str):
            errors.append("http.user_agent must be a string.")
        # Validate rate_limit
        rate_limit = config.get("rate_limit", {})
        if not _is_number(rate_limit.get("fallback_wait_ms", None)) or rate_limit.get("fallback_wait_ms") < 0:
            errors.append("rate_limit.fallback_wait_ms must be a non-negative number.")
        if not _is_number(rate_limit.get("epsilon_ms", None)) or rate_limit.get("epsilon_ms") <= 0:
            errors.append("rate_limit.epsilon_ms must be a positive number.")
        if not _is_number(rate_limit.get("max_wait_ms", None)) or rate_limit.get("max_wait_ms") <= 0:
            errors.append("rate_limit.max_wait_ms must be a positive number.")
        # Validate batch
        batch = config.get("batch", {})
        if not _is_int(batch.get("rate_limit", None)) or batch.get("rate_limit") < 1:
            errors.append("batch.rate_limit must be a positive integer.")
        if not _is_number(batch.get("pacing_factor", None)) or batch.get("pacing_factor") < 1:
            errors.append("batch.pacing_factor must be a number >= 1.")
        max_rounds = batch.get("max_rounds", None)
        if max_rounds is not None and (not _is_int(max_rounds) or max_rounds < 1):
            errors.append("batch.max_rounds must be a positive integer or None.")
        # Validate cache
        cache = config.get("cache", {})
        if not isinstance(cache.get("enabled", None), bool):
            errors.append("cache.enabled must be a boolean.")
        if not isinstance(cache.get("database_path", None), str):
            errors.append("cache.database_path must be a string.")
        if not _is_int(cache.get("default_ttl_seconds", None)):
            errors.append("cache.default_ttl_seconds must be an integer.")
        # Validate discovery
        discovery = config.get("discovery", {})
        if not isinstance(discovery.get("base_url", None), str):
            errors.append("discovery.base_url must be a string.")
        if not _is_int(discovery.get("ttl_seconds", None)):
            errors.append("discovery.ttl_seconds must be an integer.")
        # Validate auth
        auth = config.get("auth", {})
        if not isinstance(auth.get("use_ambient_identity", None), bool):
            errors.append("auth.use_ambient_identity must be a boolean.")
        if not isinstance(auth.get("token_env_var", None), str):
            errors.append("auth.token_env_var must be a string.")
        # Validate logging
        logging_cfg = config.get("logging", {})
        if not isinstance(logging_cfg.get("level", None), str):
            errors.append("logging.level must be a string.")
        if logging_cfg.get("parent_logger") is not None and not isinstance(logging_cfg.get("parent_logger"), str):
            errors.append("logging.parent_logger must be a string or None.")
        if not isinstance(logging_cfg.get("format", None), str):
            errors.append("logging.format must be a string.")
        if not isinstance(logging_cfg.get("date_format", None), str):
            errors.append("logging.date_format must be a string.")
        if not isinstance(logging_cfg.get("enable_console", None), bool):
            errors.append("logging.enable_console must be a boolean.")
        if not isinstance(logging_cfg.get("enable_file", None), bool):
            errors.append("logging.enable_file must be a boolean.")
        if logging_cfg.get("file_path") is not None and not isinstance(logging_cfg.get("file_path"), str):
            errors.append("logging.file_path must be a string or None.")
        if not _is_int(logging_cfg.get("max_file_size", None)):
            errors.append("logging.max_file_size must be an integer.")
        if not _is_int(logging_cfg.get("backup_count", None)):
            errors.append("logging.backup_count must be an integer.")
        return len(errors) == 0, errors

    @staticmethod
    def merge_with_defaults(user_config: dict) -> dict:
        return deep_merge(DEFAULT_CONFIG, user_config)


class ConfigurationManager:
    """Manages configuration, validation, merging, and runtime updates."""

    def __init__(self, user_config: dict = None):
        if user_config is None:
            user_config = {}
        self._config = self.load_config(user_config)

    def load_config(self, user_config: dict) -> dict:
        merged = ConfigurationValidator.merge_with_defaults(user_config)
        valid, errors = ConfigurationValidator.validate_config(merged)
        if not valid:
            raise ConfigurationError(f"Invalid configuration: {errors}")
        return merged

    @property
    def config(self) -> dict:
        return self._config

    def get(self, key_path: str, default: Any = None) -> Any:
        """Read a value at a dotted key path (e.g., 'batch.rate_limit')."""
        d: Any = self._config
        for k in key_path.split("."):
            if not isinstance(d, dict) or k not in d:
                return default
            d = d[k]
        return d

    def update(self, key_path: str, value: Any) -> None:
        """Update a config value at a dotted key path (e.g., 'http.timeout')."""
        keys = key_path.split(".")
        d = self._config
        for k in keys[:-1]:
            if k not in d or not isinstance(d[k], dict):
                d[k] = {}
            d = d[k]
        d[keys[-1]] = value
        # Re-validate after update
        valid, errors = ConfigurationValidator.validate_config(self._config)
        if not valid:
            raise ConfigurationError(f"Invalid configuration after update: {errors}")

    def reload(self, new_config: dict) -> None:
        self._config = self.load_config(new_config)
