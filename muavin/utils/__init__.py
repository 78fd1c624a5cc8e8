"""Utility functions for muavin."""

from muavin.utils.helpers import ensure_dir, load_json, save_json

__all__ = ["ensure_dir", "load_json", "save_json"]
