"""Ordering of changed entries so truncation drops the least valuable first."""

from __future__ import annotations

import logging
import math
import time
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from kv_sync.domain.models import (
    Entry,
    EvaluationView,
    TracePriorityScore,
    trace_id_from_key,
)

logger = logging.getLogger(__name__)


class TracePriorityScorer:
    """Ranks traces by how bad, how recent, and how referenced they are."""

    SEVERITY_WEIGHT = 0.5
    RECENCY_WEIGHT = 0.3
    REFERENCED_WEIGHT = 0.2
    RECENCY_WINDOW_MS = 30 * 24 * 60 * 60 * 1000
    DEFAULT_WORST_SCORE = 1.0

    def __init__(self, *, now_ms: Optional[int] = None) -> None:
        self._now_ms = now_ms

    def prioritize(
        self,
        trace_entries: Sequence[Entry],
        evals_by_trace: Mapping[str, Sequence[EvaluationView]],
        referenced_trace_ids: Iterable[str],
    ) -> List[Entry]:
        """Return trace entries grouped per trace, highest priority first."""

        groups = self._group_by_trace(trace_entries)
        if not groups:
            return []

        referenced = set(referenced_trace_ids)
        scores = [
            self.score(trace_id, evals_by_trace.get(trace_id, ()), referenced)
            for trace_id in groups
        ]
        scores.sort(key=lambda item: (-item.priority, item.trace_id))

        ordered: List[Entry] = []
        for item in scores:
            ordered.extend(groups[item.trace_id])
        return ordered

    def score(
        self,
        trace_id: str,
        evaluations: Sequence[EvaluationView],
        referenced: Iterable[str] = (),
    ) -> TracePriorityScore:
        worst_score = self._worst_score(evaluations)
        latest = max(
            (view.timestamp_ms for view in evaluations if view.timestamp_ms is not None),
            default=0,
        )
        is_referenced = trace_id in set(referenced)

        age_ms = self._current_ms() - latest
        # future timestamps push recency above 1; only the floor is bounded
        recency = max(0.0, 1 - age_ms / self.RECENCY_WINDOW_MS)
        priority = (
            (1 - worst_score) * self.SEVERITY_WEIGHT
            + recency * self.RECENCY_WEIGHT
            + (1.0 if is_referenced else 0.0) * self.REFERENCED_WEIGHT
        )
        return TracePriorityScore(
            trace_id=trace_id,
            priority=priority,
            worst_score=worst_score,
            latest_timestamp=latest,
            is_referenced_by_worst=is_referenced,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _group_by_trace(self, entries: Sequence[Entry]) -> Dict[str, List[Entry]]:
        groups: Dict[str, List[Entry]] = {}
        skipped = 0
        for entry in entries:
            trace_id = trace_id_from_key(entry.key)
            if trace_id is None:
                skipped += 1
                logger.debug("trace_key_skipped", extra={"key": entry.key})
                continue
            groups.setdefault(trace_id, []).append(entry)
        if skipped:
            logger.warning(
                "Skipped %d entries with unexpected trace key format", skipped
            )
        return groups

    def _worst_score(self, evaluations: Sequence[EvaluationView]) -> float:
        usable = [
            view.score
            for view in evaluations
            if view.score is not None
            and math.isfinite(view.score)
            and 0.0 <= view.score <= 1.0
        ]
        return min(usable, default=self.DEFAULT_WORST_SCORE)

    def _current_ms(self) -> int:
        if self._now_ms is not None:
            return self._now_ms
        return int(time.time() * 1000)


def prioritize_traces(
    trace_entries: Sequence[Entry],
    evals_by_trace: Mapping[str, Sequence[EvaluationView]],
    referenced_trace_ids: Iterable[str],
    *,
    now_ms: Optional[int] = None,
) -> List[Entry]:
    """Functional shortcut over :class:`TracePriorityScorer`."""

    scorer = TracePriorityScorer(now_ms=now_ms)
    return scorer.prioritize(trace_entries, evals_by_trace, referenced_trace_ids)


NAMESPACE_RANK = {
    "dashboard": 0,
    "metric": 1,
    "trend": 2,
    "correlations": 3,
    "coverage": 4,
    "pipeline": 5,
    "session": 6,
    "agent": 7,
    "meta": 8,
}


def order_high_priority(entries: Sequence[Entry]) -> List[Entry]:
    """Stable sort of non-trace entries by namespace value to the front end."""

    unknown = len(NAMESPACE_RANK)
    return sorted(
        entries,
        key=lambda entry: NAMESPACE_RANK.get(entry.key.split(":", 1)[0], unknown),
    )
