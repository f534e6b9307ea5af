"""Optional helpers for interactive and long-running use."""

from . import progress, segments

__all__ = ["progress", "segments"]
