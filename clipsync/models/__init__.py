"""Data models for the clip store."""

from .clip import Clip, ClipFilters, ClipPage

__all__ = [
    "Clip",
    "ClipFilters",
    "ClipPage",
]
