"""Domain entities for analysis jobs."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:  # pragma: no cover
    from rulecheck.infrastructure.progress import Subscription

INITIAL_STATUS = "Starting analysis..."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Job:
    """Mutable state of one analysis run held by the progress registry."""

    id: str
    status: str = INITIAL_STATUS
    progress: int = 0
    result: Any = None
    subscribers: list["Subscription"] = field(default_factory=list, repr=False)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.progress >= 100


@dataclass(slots=True)
class PageUnit:
    """One page of a document while a pipeline run is in progress."""

    page_number: int
    source: Literal["text", "recognized"]
    text: str
    content_hash: str
    confidence: float | None = None
