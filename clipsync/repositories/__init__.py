"""Repositories for clip persistence."""

from .clip import ClipRepository

__all__ = ["ClipRepository"]
