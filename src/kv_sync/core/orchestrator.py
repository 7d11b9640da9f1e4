"""Run orchestrator sequencing one delta sync pass."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set

from kv_sync.domain.interfaces import IAnalyticsSource, ICoverageStore, IStateStore
from kv_sync.domain.models import (
    COVERAGE_KEY,
    HEARTBEAT_KEY,
    SENTINEL_KEYS,
    BudgetAllocation,
    CoverageData,
    Entry,
    SyncReport,
    TimeRange,
    trace_id_from_key,
)
from kv_sync.sync.budget import (
    COVERAGE_SLOTS,
    HEARTBEAT_SLOTS,
    MIN_TRACE_BUDGET,
    compute_budget_allocation,
)
from kv_sync.sync.coverage import (
    CoverageEstimator,
    coverage_needs_write,
    coverage_stable_hash,
)
from kv_sync.sync.delta import (
    complete_trace_pairs,
    filter_changed,
    prune_state,
    record_written,
)
from kv_sync.sync.priority import TracePriorityScorer, order_high_priority
from kv_sync.sync.views import (
    extract_evaluations_by_trace,
    extract_referenced_trace_ids,
)
from kv_sync.sync.writer import BatchedWriter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""

    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


class SyncOrchestrator:
    """Loads state, decides what to write under budget, writes, persists.

    One call to :meth:`run` is one linear pass. A hard write failure
    propagates before anything is persisted, so the next run starts from the
    previous state and redoes the work.
    """

    def __init__(
        self,
        source: IAnalyticsSource,
        writer: BatchedWriter,
        state_store: IStateStore,
        coverage_store: ICoverageStore,
        *,
        write_budget: int,
        min_trace_budget: int = MIN_TRACE_BUDGET,
        heartbeat_interval_seconds: int = 3_600,
        estimator: Optional[CoverageEstimator] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if write_budget < 1:
            raise ValueError("write_budget must be at least 1")
        self._source = source
        self._writer = writer
        self._state_store = state_store
        self._coverage_store = coverage_store
        self._write_budget = write_budget
        self._min_trace_budget = min_trace_budget
        self._heartbeat_interval = heartbeat_interval_seconds
        self._estimator = estimator or CoverageEstimator()
        self._clock = clock

    def run(self, time_range: TimeRange) -> SyncReport:
        now = self._clock()
        state = self._state_store.load()
        previous_coverage = self._coverage_store.load()
        logger.info("Loaded sync state with %d keys", len(state))

        candidates = self._compute_candidates(time_range)
        state = prune_state(state, (entry.key for entry in candidates))
        changed = complete_trace_pairs(filter_changed(candidates, state), candidates)
        referenced = extract_referenced_trace_ids(candidates)
        trace_ids = self._trace_ids(candidates)

        high_priority = order_high_priority(
            [entry for entry in changed if not entry.is_trace]
        )
        traces = [entry for entry in changed if entry.is_trace]
        allocation = compute_budget_allocation(
            len(high_priority),
            self._write_budget,
            min_trace_budget=self._min_trace_budget,
            reserved_slots=HEARTBEAT_SLOTS + COVERAGE_SLOTS,
        )
        heartbeat = self._heartbeat_entry(now)

        if changed:
            plan = self._plan(high_priority, traces, candidates, referenced, allocation, now)
            plan.append(heartbeat)
        elif self._heartbeat_due(previous_coverage, now):
            logger.info("No changed entries; refreshing heartbeat")
            plan = [heartbeat]
        else:
            logger.info("No changed entries and heartbeat is fresh; nothing to write")
            plan = []

        summary = self._writer.write(plan) if plan else None
        written_entries = plan[: summary.written] if summary else []
        quota_exhausted = bool(summary and summary.quota_exhausted)
        state = record_written(state, written_entries)
        heartbeat_written = any(entry.key == HEARTBEAT_KEY for entry in written_entries)
        data_written = sum(1 for entry in written_entries if entry.key not in SENTINEL_KEYS)

        coverage = self._estimator.estimate(
            state,
            trace_ids,
            referenced_trace_ids=referenced,
            changed_trace_count=len(traces),
            trace_budget=allocation.trace_budget,
            now=now,
            previous=previous_coverage,
            last_sync=isoformat(now) if heartbeat_written else None,
        )
        if not quota_exhausted and coverage_needs_write(coverage, state):
            # the coverage record shares the run's write budget with the plan
            if len(plan) < self._write_budget:
                coverage_written, quota_exhausted = self._write_coverage(coverage)
                if coverage_written:
                    state[COVERAGE_KEY] = coverage_stable_hash(coverage)
            else:
                logger.info("No write budget left for the coverage record; deferring it")

        if self._writer.dry_run:
            logger.info("Dry run: sync state and coverage snapshot not persisted")
        else:
            self._state_store.save(state)
            self._coverage_store.save(coverage)

        report = SyncReport(
            candidates=len(candidates),
            changed=len(changed),
            planned=len(plan),
            written=data_written,
            deferred=len(changed) - data_written,
            quota_exhausted=quota_exhausted,
            dry_run=self._writer.dry_run,
            heartbeat_written=heartbeat_written,
            allocation=allocation,
            coverage=coverage,
        )
        logger.info("Sync complete: %s", report.summary_line())
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _compute_candidates(self, time_range: TimeRange) -> List[Entry]:
        unique: Dict[str, Entry] = {}
        for entry in self._source.compute_candidate_entries(time_range):
            if entry.key in SENTINEL_KEYS:
                logger.debug("Ignoring source entry for reserved key %s", entry.key)
                continue
            if entry.key in unique:
                logger.warning("Duplicate candidate key %s; keeping the last value", entry.key)
            unique[entry.key] = entry
        candidates = list(unique.values())
        logger.info(
            "Computed %d candidate entries",
            len(candidates),
            extra={"start": time_range.start.isoformat(), "end": time_range.end.isoformat()},
        )
        return candidates

    def _plan(
        self,
        high_priority: Sequence[Entry],
        traces: Sequence[Entry],
        candidates: Sequence[Entry],
        referenced: Set[str],
        allocation: BudgetAllocation,
        now: datetime,
    ) -> List[Entry]:
        scorer = TracePriorityScorer(now_ms=int(now.timestamp() * 1000))
        prioritized = scorer.prioritize(
            traces, extract_evaluations_by_trace(candidates), referenced
        )
        plan = [
            *high_priority[: allocation.high_priority_budget],
            *prioritized[: allocation.trace_budget],
        ]
        logger.info(
            "Planned %d of %d changed entries (%d high-priority, %d trace)",
            len(plan),
            len(high_priority) + len(traces),
            min(len(high_priority), allocation.high_priority_budget),
            min(len(prioritized), allocation.trace_budget),
            extra={
                "high_priority_budget": allocation.high_priority_budget,
                "trace_budget": allocation.trace_budget,
                "referenced_traces": len(referenced),
            },
        )
        return plan

    def _write_coverage(self, coverage: CoverageData) -> tuple[bool, bool]:
        summary = self._writer.write([Entry(key=COVERAGE_KEY, value=coverage.to_json())])
        return summary.written == 1, summary.quota_exhausted

    def _heartbeat_due(
        self, previous: Optional[CoverageData], now: datetime
    ) -> bool:
        if previous is None or not previous.last_sync:
            return True
        try:
            last = datetime.fromisoformat(previous.last_sync.replace("Z", "+00:00"))
        except ValueError:
            return True
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return (now - last).total_seconds() >= self._heartbeat_interval

    @staticmethod
    def _heartbeat_entry(now: datetime) -> Entry:
        return Entry(key=HEARTBEAT_KEY, value=json.dumps(isoformat(now)))

    @staticmethod
    def _trace_ids(entries: Sequence[Entry]) -> Set[str]:
        return {
            trace_id
            for trace_id in (trace_id_from_key(entry.key) for entry in entries)
            if trace_id is not None
        }
