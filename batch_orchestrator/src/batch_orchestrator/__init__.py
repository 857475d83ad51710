"""Batch processing orchestrator worker."""

__version__ = "0.1.0"
