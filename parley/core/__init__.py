"""Core utilities for the Parley backend."""

from .mentions import EVERYONE, parse_mentions
from .storage import resolve_path, store_upload, url_for

__all__ = ["EVERYONE", "parse_mentions", "store_upload", "resolve_path", "url_for"]
