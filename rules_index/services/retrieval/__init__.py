"""Keyword retrieval over indexed rules sources."""
