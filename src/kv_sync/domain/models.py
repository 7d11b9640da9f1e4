"""Domain value objects describing what gets synced and how a run went."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TRACE_PREFIX = "trace:"
TRACE_EVALUATIONS_PREFIX = "evaluations:trace:"
HEARTBEAT_KEY = "meta:lastSync"
COVERAGE_KEY = "meta:syncCoverage"
SENTINEL_KEYS = frozenset({HEARTBEAT_KEY, COVERAGE_KEY})


class Entry(BaseModel):
    """A single key/value pair destined for the remote store."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str

    @field_validator("key")
    @classmethod
    def validate_key(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("key must be a non-empty string")
        return value

    @property
    def is_trace(self) -> bool:
        return is_trace_key(self.key)


def is_trace_key(key: str) -> bool:
    return key.startswith(TRACE_PREFIX) or key.startswith(TRACE_EVALUATIONS_PREFIX)


def trace_id_from_key(key: str) -> Optional[str]:
    """Return the trace id encoded in a trace-family key, or None."""

    if key.startswith(TRACE_EVALUATIONS_PREFIX):
        trace_id = key[len(TRACE_EVALUATIONS_PREFIX) :]
    elif key.startswith(TRACE_PREFIX):
        trace_id = key[len(TRACE_PREFIX) :]
    else:
        return None
    return trace_id or None


class TimeRange(BaseModel):
    """Inclusive window of raw records considered by the analytics source."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "TimeRange":
        if self.end < self.start:
            raise ValueError("end must not precede start")
        return self

    @classmethod
    def last_days(cls, days: int, now: datetime | None = None) -> "TimeRange":
        if days <= 0:
            raise ValueError("days must be greater than zero")
        end = now or datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=days), end=end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class EvaluationView(BaseModel):
    """The few evaluation fields prioritisation needs; the payload stays opaque."""

    model_config = ConfigDict(frozen=True)

    trace_id: str
    score: Optional[float] = None
    timestamp_ms: Optional[int] = None


class TracePriorityScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    trace_id: str
    priority: float
    worst_score: float = 1.0
    latest_timestamp: int = 0
    is_referenced_by_worst: bool = False


class BudgetAllocation(BaseModel):
    """Per-run split of the write budget; recomputed every run."""

    model_config = ConfigDict(frozen=True)

    high_priority_budget: int = Field(..., ge=0)
    trace_budget: int = Field(..., ge=0)

    @field_validator("trace_budget")
    @classmethod
    def validate_even(cls, value: int) -> int:
        if value % 2:
            raise ValueError("trace_budget must be even so trace pairs stay intact")
        return value

    @property
    def total(self) -> int:
        return self.high_priority_budget + self.trace_budget


_UNSTABLE_COVERAGE_FIELDS = frozenset({"timestamp", "last_checked", "last_sync"})


class CoverageData(BaseModel):
    """Progress summary served to the front end as ``meta:syncCoverage``."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    total_traces: int = Field(..., ge=0)
    synced_traces: int = Field(..., ge=0)
    coverage_percent: float = Field(..., ge=0)
    referenced_coverage: Optional[float] = None
    runs_remaining: Optional[int] = None
    timestamp: str
    last_checked: str
    last_sync: Optional[str] = None

    def stable_fields(self) -> Dict[str, Any]:
        """Fields whose change warrants a remote write."""

        return self.model_dump(by_alias=True, exclude=set(_UNSTABLE_COVERAGE_FIELDS))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class WriteOutcome(str, Enum):
    """Result classes a transport can report for one bulk put."""

    SUCCESS = "success"
    QUOTA_EXHAUSTED = "quota_exhausted"
    FAILURE = "failure"


class WriteResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: WriteOutcome
    detail: str = ""

    @classmethod
    def success(cls) -> "WriteResult":
        return cls(outcome=WriteOutcome.SUCCESS)

    @classmethod
    def quota_exhausted(cls, detail: str) -> "WriteResult":
        return cls(outcome=WriteOutcome.QUOTA_EXHAUSTED, detail=detail)

    @classmethod
    def failure(cls, detail: str) -> "WriteResult":
        return cls(outcome=WriteOutcome.FAILURE, detail=detail)


class WriteSummary(BaseModel):
    """How many entries of a write request actually landed."""

    model_config = ConfigDict(frozen=True)

    requested: int = Field(..., ge=0)
    written: int = Field(..., ge=0)
    quota_exhausted: bool = False

    @model_validator(mode="after")
    def validate_counts(self) -> "WriteSummary":
        if self.written > self.requested:
            raise ValueError("written cannot exceed requested")
        return self


class SyncReport(BaseModel):
    """Outcome of one orchestrated run."""

    model_config = ConfigDict(frozen=True)

    candidates: int = 0
    changed: int = 0
    planned: int = 0
    written: int = 0
    deferred: int = 0
    quota_exhausted: bool = False
    dry_run: bool = False
    heartbeat_written: bool = False
    allocation: Optional[BudgetAllocation] = None
    coverage: Optional[CoverageData] = None

    def summary_line(self) -> str:
        parts = [
            f"candidates={self.candidates}",
            f"changed={self.changed}",
            f"written={self.written}/{self.planned}",
            f"deferred={self.deferred}",
        ]
        if self.coverage is not None:
            parts.append(f"coverage={self.coverage.coverage_percent}%")
            if self.coverage.runs_remaining is not None:
                parts.append(f"runs_remaining={self.coverage.runs_remaining}")
        if self.quota_exhausted:
            parts.append("quota_exhausted")
        if self.dry_run:
            parts.append("dry_run")
        return " ".join(parts)
