from __future__ import annotations


class RuleCheckError(Exception):
    """Base class for errors raised by the analysis service."""


class ValidationError(RuleCheckError):
    """Raised when caller input is rejected before a job is created."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamError(RuleCheckError):
    """Raised when the recognition or inference service fails."""


class UpstreamTimeout(UpstreamError):
    """Raised when an outbound call exceeds its deadline."""


class MalformedVerdict(RuleCheckError):
    """Raised when model output cannot be parsed into a verdict."""


class DocumentReadError(RuleCheckError):
    """Raised when a PDF cannot be opened or rendered."""


class DuplicateJob(RuleCheckError):
    """Raised when a job id is registered twice."""


class JobNotFound(RuleCheckError):
    """Raised when a job id is not present in the registry."""


class ProgressInvariantError(RuleCheckError):
    """Raised when a progress update would break job invariants."""


__all__ = [
    "DocumentReadError",
    "DuplicateJob",
    "JobNotFound",
    "MalformedVerdict",
    "ProgressInvariantError",
    "RuleCheckError",
    "UpstreamError",
    "UpstreamTimeout",
    "ValidationError",
]
