"""Configuration management for feed engine components."""

from .engine_config import EngineConfig

__all__ = ["EngineConfig"]
