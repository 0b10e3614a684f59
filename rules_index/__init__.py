"""Rules ingestion and retrieval pipeline for tabletop campaign rulebooks."""

__version__ = "0.1.0"
