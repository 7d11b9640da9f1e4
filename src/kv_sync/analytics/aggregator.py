"""Pure business-logic helpers for evaluation score aggregation."""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, TypeVar

from .interfaces import EvaluationRecord

K = TypeVar("K", bound=Hashable)

PERCENTILES = {"p10": 0.10, "p25": 0.25, "p50": 0.50, "p75": 0.75, "p90": 0.90, "p99": 0.99}


class AnalyticsAggregator:
    """Performs read-only calculations on evaluation records."""

    def scores(self, records: Sequence[EvaluationRecord]) -> List[float]:
        return [
            record.score_value
            for record in records
            if record.score_value is not None and math.isfinite(record.score_value)
        ]

    def calculate_percentiles(self, values: Sequence[float]) -> Dict[str, float]:
        if not values:
            return {label: 0.0 for label in PERCENTILES}
        ordered = sorted(values)
        return {
            label: self._percentile(ordered, quantile)
            for label, quantile in PERCENTILES.items()
        }

    def summarize(self, records: Sequence[EvaluationRecord]) -> Dict[str, Any]:
        values = self.scores(records)
        return {
            "count": len(records),
            "scored": len(values),
            "avg": self.average(values),
            "min": round(min(values), 4) if values else None,
            "max": round(max(values), 4) if values else None,
            "percentiles": self.calculate_percentiles(values),
        }

    @staticmethod
    def average(values: Sequence[float]) -> Optional[float]:
        if not values:
            return None
        return round(sum(values) / len(values), 4)

    @staticmethod
    def group_by(
        records: Sequence[EvaluationRecord],
        key: Callable[[EvaluationRecord], Optional[K]],
    ) -> Dict[K, List[EvaluationRecord]]:
        grouped: Dict[K, List[EvaluationRecord]] = {}
        for record in records:
            group = key(record)
            if group is None:
                continue
            grouped.setdefault(group, []).append(record)
        return grouped

    def worst_evaluations(
        self, records: Sequence[EvaluationRecord], top_n: int = 5
    ) -> List[Dict[str, Any]]:
        scored = [
            record
            for record in records
            if record.score_value is not None and math.isfinite(record.score_value)
        ]
        scored.sort(key=lambda record: (record.score_value, record.timestamp))
        return [
            {
                "traceId": record.trace_id,
                "sessionId": record.session_id,
                "scoreValue": record.score_value,
                "timestamp": record.timestamp.isoformat(),
                "evaluationName": record.evaluation_name,
            }
            for record in scored[: max(top_n, 0)]
        ]

    def histogram(self, values: Sequence[float], bucket_count: int = 10) -> List[int]:
        """Counts of scores over ``bucket_count`` equal slices of [0, 1]."""

        if bucket_count <= 0:
            return []
        buckets = [0] * bucket_count
        for value in values:
            if not 0.0 <= value <= 1.0:
                continue
            buckets[min(int(value * bucket_count), bucket_count - 1)] += 1
        return buckets

    @staticmethod
    def _percentile(values: Sequence[float], quantile: float) -> float:
        if not values:
            return 0.0
        index = (len(values) - 1) * quantile
        lower = int(index)
        upper = min(lower + 1, len(values) - 1)
        weight = index - lower
        return round(values[lower] * (1 - weight) + values[upper] * weight, 6)
