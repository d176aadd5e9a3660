"""
Configuration for vaultsearch.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, cast

from vaultsearch.core.exceptions import ConfigurationError
from vaultsearch.core.logging import logger


class ConfigValidator:
    """
    Configuration validator with range rules.

    Validations:
    1. Positive sizes and batch sizes
    2. Weights inside [0, 1]
    3. Index path kept relative to the vault
    """

    def validate_config(self, config: Dict[str, Any]) -> None:
        """
        Validate the complete configuration.

        Raises:
            ConfigurationError: On the first invalid value
        """
        positive_ints = {
            "chunking.max_chars": config.get("chunking", {}).get("max_chars"),
            "embeddings.batch_size": config.get("embeddings", {}).get("batch_size"),
            "embeddings.requests_per_minute": config.get("embeddings", {}).get(
                "requests_per_minute"
            ),
            "indexing.vector_batch_size": config.get("indexing", {}).get("vector_batch_size"),
        }
        for key, value in positive_ints.items():
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                logger.error("Invalid configuration value", key=key, value=value)
                raise ConfigurationError(f"Invalid {key}: {value}", context={"key": key})

        weight = config.get("search", {}).get("semantic_weight")
        if not isinstance(weight, (int, float)) or not 0.0 <= float(weight) <= 1.0:
            logger.error("Invalid semantic weight", value=weight)
            raise ConfigurationError(f"Invalid search.semantic_weight: {weight}")

        timeout = config.get("expansion", {}).get("timeout_seconds")
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            logger.error("Invalid expansion timeout", value=timeout)
            raise ConfigurationError(f"Invalid expansion.timeout_seconds: {timeout}")

        index_path = str(config.get("indexing", {}).get("index_path", ""))
        if ".." in Path(index_path).parts:
            logger.error("Unsafe index path detected", path=index_path)
            raise ConfigurationError(f"Unsafe index path: {index_path}")


class Settings:
    """
    Main system configuration.

    Priority:
    1. Default values
    2. .vaultsearch YAML file
    3. Environment variables
    """

    CONFIG_FILENAME = ".vaultsearch"

    def __init__(self, config_path: Optional[Path] = None) -> None:
        self._explicit_path = config_path
        self.config = self._load_config()
        self._validate_config()
        self.validator = ConfigValidator()
        self.validator.validate_config(self.config)
        logger.debug(
            "Settings initialized",
            config_source=str(self._find_config_file() or "defaults"),
        )

    def _get_default_config(self) -> Dict[str, Any]:
        """Default configuration, single source for every section."""
        return {
            "version": "1.0",
            "chunking": {
                "max_chars": 6000,
                "overlap": 0,
                "max_bytes_total": 10 * 1024 * 1024,
            },
            "search": {
                "max_results": 30,
                "candidate_limit": 500,
                "grep_limit": 500,
                "semantic_weight": 0.6,
                "rrf_k": 60,
                "enable_semantic": False,
                "semantic_mode": "scoped",
                "enable_hyde": True,
            },
            "expansion": {
                "max_variants": 3,
                "timeout_seconds": 5.0,
                "cache_size": 100,
                "min_term_length": 2,
            },
            "embeddings": {
                "model": "nomic-embed-text",
                "batch_size": 16,
                "requests_per_minute": 90,
            },
            "indexing": {
                "index_path": ".vaultsearch-index/index.jsonl",
                "vector_batch_size": 1000,
            },
            "ollama": {
                "base_url": "http://localhost:11434",
                "chat_model": "llama3.2",
                "request_timeout": 60,
            },
            "logging": {"level": "INFO", "debug_mode": False},
        }

    def _find_config_file(self) -> Optional[Path]:
        """
        Find the .vaultsearch configuration file.

        Search order:
        1. Path given to the constructor
        2. Current directory
        """
        if self._explicit_path is not None:
            return self._explicit_path if self._explicit_path.exists() else None

        local_config = Path.cwd() / self.CONFIG_FILENAME
        if local_config.is_file():
            return local_config

        return None

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration in priority order.

        1. Defaults
        2. .vaultsearch file
        3. Environment variables
        """
        defaults = self._get_default_config()

        config_path = self._find_config_file()
        if config_path:
            try:
                with open(config_path, encoding='utf-8') as f:
                    file_config = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                logger.error(
                    "Error reading configuration file", file=str(config_path), error=str(e)
                )
                raise ConfigurationError(
                    f"Error reading configuration file: {e}", cause=e
                ) from e

            if file_config:
                if not isinstance(file_config, dict):
                    raise ConfigurationError(
                        "Configuration file must contain a mapping",
                        context={"file": str(config_path)},
                    )
                self._deep_merge(defaults, file_config)
                logger.debug("Config loaded from file", keys=list(file_config.keys()))

        env_overrides = {
            "VAULTSEARCH_LOG_LEVEL": (("logging", "level"), str),
            "VAULTSEARCH_INDEX_PATH": (("indexing", "index_path"), str),
            "VAULTSEARCH_EMBEDDING_RPM": (("embeddings", "requests_per_minute"), int),
            "VAULTSEARCH_OLLAMA_URL": (("ollama", "base_url"), str),
        }

        for env_key, (path_tuple, convert) in env_overrides.items():
            env_value = os.getenv(env_key)
            if env_value:
                try:
                    value_to_set: Any = convert(env_value)
                except ValueError:
                    logger.warning("Ignoring invalid environment override", key=env_key)
                    continue
                self._set_nested(defaults, path_tuple, value_to_set)

        return defaults

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> None:
        """Deep merge of dictionaries."""
        for key, value in update.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(cast(Dict[str, Any], base[key]), cast(Dict[str, Any], value))
            else:
                base[key] = value

    def _set_nested(self, data: Dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        """Set value at nested path."""
        current = data
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _validate_config(self) -> None:
        """Fill sections a partial file replaced with a non-mapping or dropped."""
        defaults = self._get_default_config()
        missing_sections = [
            section
            for section, value in defaults.items()
            if isinstance(value, dict) and not isinstance(self.config.get(section), dict)
        ]

        if missing_sections:
            logger.warning(
                "Configuration missing required sections, using defaults",
                sections=missing_sections,
            )
            for section in missing_sections:
                self.config[section] = defaults[section]

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with support for dotted paths ("search.rrf_k")."""
        if "." in key:
            current: Any = self.config
            for part in key.split("."):
                if isinstance(current, dict) and part in current:
                    current = current[part]
                else:
                    return default
            return current
        return self.config.get(key, default)

    def require(self, key: str) -> Any:
        """
        Get required value or raise exception.

        Useful for critical configs that must exist.
        """
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            logger.error("Required config missing", key=key)
            raise ConfigurationError(f"Missing required config: {key}")
        return value
