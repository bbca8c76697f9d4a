"""Domain layer definitions."""

from .jobs import INITIAL_STATUS, Job, PageUnit

__all__ = [
    "INITIAL_STATUS",
    "Job",
    "PageUnit",
]
