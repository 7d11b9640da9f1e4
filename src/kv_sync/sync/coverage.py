"""Progress estimate of how much of the trace backlog the remote store holds.

The estimate trusts the local state table rather than reading the remote
store back, so ``synced_traces`` can over-count after an unnoticed write loss.
"""

from __future__ import annotations

import json
import math
from datetime import datetime
from typing import Iterable, Mapping, Optional

from kv_sync.domain.models import COVERAGE_KEY, TRACE_PREFIX, CoverageData

from .delta import content_hash


class CoverageEstimator:
    """Derives :class:`CoverageData` from the post-write state table."""

    def estimate(
        self,
        state: Mapping[str, str],
        candidate_trace_ids: Iterable[str],
        *,
        referenced_trace_ids: Iterable[str] = (),
        changed_trace_count: int = 0,
        trace_budget: int = 0,
        now: datetime,
        previous: Optional[CoverageData] = None,
        last_sync: Optional[str] = None,
    ) -> CoverageData:
        trace_ids = set(candidate_trace_ids)
        synced = sum(1 for key in state if key.startswith(TRACE_PREFIX))
        referenced = set(referenced_trace_ids) & trace_ids
        referenced_synced = sum(
            1 for trace_id in referenced if f"{TRACE_PREFIX}{trace_id}" in state
        )

        checked_at = now.isoformat()
        draft = CoverageData(
            total_traces=len(trace_ids),
            synced_traces=synced,
            coverage_percent=_percent(synced, len(trace_ids)),
            referenced_coverage=(
                _percent(referenced_synced, len(referenced)) if referenced else None
            ),
            runs_remaining=self.runs_remaining(changed_trace_count, trace_budget),
            timestamp=checked_at,
            last_checked=checked_at,
            last_sync=last_sync or (previous.last_sync if previous else None),
        )
        if previous is not None and previous.stable_fields() == draft.stable_fields():
            return draft.model_copy(update={"timestamp": previous.timestamp})
        return draft

    @staticmethod
    def runs_remaining(changed_trace_count: int, trace_budget: int) -> Optional[int]:
        """Runs needed to drain the trace backlog; None when it can never drain."""

        backlog = max(0, changed_trace_count - trace_budget)
        if trace_budget > 0:
            return math.ceil(backlog / trace_budget)
        if changed_trace_count > 0:
            return None
        return 0


def coverage_stable_hash(coverage: CoverageData) -> str:
    """Digest over the fields that justify rewriting the coverage record."""

    return content_hash(json.dumps(coverage.stable_fields(), sort_keys=True))


def coverage_needs_write(coverage: CoverageData, state: Mapping[str, str]) -> bool:
    return state.get(COVERAGE_KEY) != coverage_stable_hash(coverage)


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(min(part, whole) / whole * 100, 1)
