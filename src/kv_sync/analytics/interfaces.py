"""Analytics contracts that separate raw record storage from payload computation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EvaluationRecord(BaseModel):
    """One evaluation result; unknown fields ride along untouched."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    evaluation_name: str
    timestamp: datetime
    score_value: Optional[float] = None
    trace_id: Optional[str] = None
    session_id: Optional[str] = None
    agent_name: Optional[str] = None
    evaluator_type: Optional[str] = None
    id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @property
    def is_canary(self) -> bool:
        return self.evaluator_type == "canary"

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class SpanRecord(BaseModel):
    """One trace span as emitted by the telemetry exporter."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    trace_id: str
    span_id: str
    name: str = ""
    start_time: datetime
    end_time: Optional[datetime] = None
    parent_span_id: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value) if value is not None else None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class IEvaluationRepository(Protocol):
    """Read contract for raw evaluation and span storage layers."""

    def find_evaluations(
        self,
        start: datetime,
        end: datetime,
        *,
        name: Optional[str] = None,
        limit: int = 10_000,
    ) -> List[EvaluationRecord]:
        """Return evaluations in the inclusive window, oldest first, at most ``limit``."""

    def find_spans(
        self, start: datetime, end: datetime, *, limit: int = 50_000
    ) -> List[SpanRecord]:
        """Return spans starting in the inclusive window, oldest first, at most ``limit``."""
