"""Configuration module: exports Settings and load_config."""

from rules_index.config.loader import load_config
from rules_index.config.settings import Settings

__all__ = ["Settings", "load_config"]
