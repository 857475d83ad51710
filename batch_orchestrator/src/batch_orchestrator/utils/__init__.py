"""Utility functions."""

from .storage_path import StorageLocation, parse_storage_path

__all__ = ["StorageLocation", "parse_storage_path"]
