"""Configuration settings for the feed engine."""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from dotenv import load_dotenv

ENV_PREFIX = "FEED_ENGINE_"


def bool_from_env(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass
class EngineConfig:
    """Configuration for the feed engine.

    Attributes:
        refresh_interval: Seconds between periodic composition cycles
        catalog_url: URL of the JSON catalog endpoint
        catalog_cache_ttl: Seconds a fetched catalog is served from cache
        ranking_api_key: API key for the ranking model; empty disables ranking
        ranking_model: Model name used for ranking
        ranking_timeout: Seconds to wait for a ranking answer
        ranking_fail_max: Consecutive ranking failures before the circuit opens
        ranking_reset_timeout: Seconds before an open circuit is retried
        db_path: SQLite file holding persisted state
        interactions_key: Storage key of the interaction state blob
        exclusions_key: Storage key of the admin exclusion list
        metrics_port: Port for Prometheus metrics server
        log_level: Minimum log level
        log_json: Render logs as JSON instead of console output
    """

    refresh_interval: float = 300.0
    catalog_url: str = ""
    catalog_cache_ttl: float = 300.0
    ranking_api_key: str = ""
    ranking_model: str = "gemini-3-flash-preview"
    ranking_timeout: float = 20.0
    ranking_fail_max: int = 3
    ranking_reset_timeout: int = 120
    db_path: str = "./data/feed_engine.db"
    interactions_key: str = "feed-engine-interactions"
    exclusions_key: str = "feed-engine-deleted-ids"
    metrics_port: int = 8000
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "EngineConfig":
        """Create an EngineConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            EngineConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None, dotenv: bool = True) -> "EngineConfig":
        """Create an EngineConfig from ``FEED_ENGINE_*`` environment variables.

        Args:
            env: Mapping to read instead of ``os.environ``
            dotenv: Load a ``.env`` file into the environment first

        Returns:
            EngineConfig with environment overrides applied
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = dict(os.environ)

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type in (bool, "bool"):
                values[f.name] = bool_from_env(raw)
            elif f.type in (int, "int"):
                values[f.name] = int(raw)
            elif f.type in (float, "float"):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw
        return cls.from_dict(values)
