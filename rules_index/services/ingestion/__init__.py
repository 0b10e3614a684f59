"""Ingestion stages: normalize → detect → chunk → canonicalize → datasets."""
