"""Core module initialization."""

from timefly_exports.core.config import settings

__all__ = ["settings"]
