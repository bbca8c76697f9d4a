from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class Verdict(BaseModel):
    rule: str = ""
    status: Literal["pass", "fail"]
    evidence: str = ""
    reasoning: str = ""
    confidence: int = Field(default=0, ge=0, le=100)


VerdictResult = Union[Verdict, list[Verdict]]


class ProgressEvent(BaseModel):
    """Payload relayed to status stream subscribers."""

    status: str
    progress: int = Field(ge=0, le=100)
    data: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.progress >= 100


class ApiEnvelope(BaseModel):
    status: int
    message: str
    data: Any = None
    success: bool = True


def dump_result(result: Any) -> Any:
    """Convert verdict models into JSON compatible structures."""

    if isinstance(result, BaseModel):
        return result.model_dump()
    if isinstance(result, list):
        return [dump_result(item) for item in result]
    return result
