"""Handlers for the orchestration worker."""

from .orchestration import BatchOrchestrator

__all__ = ["BatchOrchestrator"]
