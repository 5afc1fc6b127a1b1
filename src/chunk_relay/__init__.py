"""Resumable chunk processing over blob storage."""

__version__ = "0.1.0"
