"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (priority order):
#
#   1. Environment variables, e.g. RULES_DB_PATH=/var/data/rules.db
#   2. The .env file in the project root (local development)
#
# Field ``chunk_target_size`` maps to env var ``CHUNK_TARGET_SIZE``.
# Defaults below are used when neither source sets a value.
#
# Chunk sizes are split in two families: page-bounded documents
# (``chunk_*``) and pasted free text (``paste_chunk_*``), because the two
# origins produce very different paragraph shapes.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Rules indexer settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Storage ===
    rules_db_path: str = "data/rules_index.db"

    # === Chunking (page-bounded documents) ===
    chunk_target_size: int = 1800
    chunk_overlap: int = 200
    chunk_min_size: int = 500
    chunk_max_size: int = 2500

    # === Chunking (pasted text) ===
    paste_chunk_target_size: int = 1800
    paste_chunk_overlap: int = 200
    # Pasted text is cut into pseudo-pages of at most this many characters.
    pseudo_page_chars: int = 8000

    # === Normalization / OCR fallback ===
    # A page with fewer stripped characters than this counts as "low yield".
    ocr_min_chars_per_page: int = 100
    ocr_language: str = "eng"
    ocr_dpi: int = 300
    # Longer first/last lines are never treated as running headers/footers.
    header_footer_max_line_length: int = 100

    # === Persistence ===
    persistence_batch_size: int = 200

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
