"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. Settings defaults   - the field defaults in settings.py
#   2. config/config.yaml  - static, checked-in tuning
#   3. .env file / env vars - local or deploy-time overrides
#
# Only Settings fields that were actually supplied by .env or the
# environment (``model_fields_set``) override the YAML file, so a tuned
# ``chunking.document.target_size`` in config.yaml is not clobbered by
# the built-in default.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from rules_index.config.settings import Settings
from rules_index.utils.errors import ConfigurationError

# Settings field -> key path in the resolved config dictionary.
_FIELD_PATHS: dict[str, tuple[str, ...]] = {
    "app_env": ("app", "env"),
    "rules_db_path": ("storage", "rules_db_path"),
    "chunk_target_size": ("chunking", "document", "target_size"),
    "chunk_overlap": ("chunking", "document", "overlap"),
    "chunk_min_size": ("chunking", "document", "min_size"),
    "chunk_max_size": ("chunking", "document", "max_size"),
    "paste_chunk_target_size": ("chunking", "pasted_text", "target_size"),
    "paste_chunk_overlap": ("chunking", "pasted_text", "overlap"),
    "pseudo_page_chars": ("chunking", "pasted_text", "pseudo_page_chars"),
    "ocr_min_chars_per_page": ("normalization", "ocr_min_chars_per_page"),
    "header_footer_max_line_length": ("normalization", "header_footer_max_line_length"),
    "ocr_language": ("ocr", "language"),
    "ocr_dpi": ("ocr", "dpi"),
    "persistence_batch_size": ("persistence", "batch_size"),
    "log_level": ("logging", "level"),
}


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Pre-built settings; a fresh ``Settings()`` is read otherwise.

    Returns:
        Fully resolved configuration dictionary.  Every key in
        ``_FIELD_PATHS`` is present.

    Raises:
        ConfigurationError: If the YAML file exists but is not a mapping.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
        if not isinstance(yaml_config, dict):
            raise ConfigurationError(f"{path} must contain a mapping at the top level")
    else:
        yaml_config = {}

    settings = settings or Settings()

    defaults: dict = {}
    env_overrides: dict = {}
    for field_name, keys in _FIELD_PATHS.items():
        value = getattr(settings, field_name)
        target = env_overrides if field_name in settings.model_fields_set else defaults
        _set_path(target, keys, value)

    # Defaults fill gaps, YAML overrides defaults, environment overrides YAML.
    _deep_merge(defaults, yaml_config)
    _deep_merge(defaults, env_overrides)
    return defaults


def _set_path(tree: dict, keys: tuple[str, ...], value: object) -> None:
    node = tree
    for key in keys[:-1]:
        node = node.setdefault(key, {})
    node[keys[-1]] = value


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
