"""Semantic search over course video transcripts."""

__version__ = "1.0.0"
