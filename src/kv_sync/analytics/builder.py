"""Computes every front-end entry from raw evaluations and spans.

This is the analytics collaborator the orchestrator consumes through
``IAnalyticsSource``. Payloads are serialized with sorted keys so an
unchanged computation always yields the same bytes, and therefore the same
content hash.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from kv_sync.domain.interfaces import IAnalyticsSource
from kv_sync.domain.models import (
    TRACE_EVALUATIONS_PREFIX,
    TRACE_PREFIX,
    Entry,
    TimeRange,
)

from .aggregator import AnalyticsAggregator
from .interfaces import EvaluationRecord, IEvaluationRepository, SpanRecord

PERIODS: Dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}
ROLES = ("executive", "operator", "auditor")
METRIC_WINDOW = timedelta(days=7)
TREND_BUCKETS = 10
WORST_TOP_N = 5
ALERT_THRESHOLD = 0.7
EVALUATION_QUERY_LIMIT = 10_000
SPAN_QUERY_LIMIT = 50_000

logger = logging.getLogger(__name__)


def serialize(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class CandidateBuilder(IAnalyticsSource):
    """High-level facade turning repository records into KV entries."""

    def __init__(
        self,
        repository: IEvaluationRepository,
        aggregator: Optional[AnalyticsAggregator] = None,
        *,
        evaluation_limit: int = EVALUATION_QUERY_LIMIT,
        span_limit: int = SPAN_QUERY_LIMIT,
    ) -> None:
        self._repository = repository
        self._aggregator = aggregator or AnalyticsAggregator()
        self._evaluation_limit = evaluation_limit
        self._span_limit = span_limit

    def compute_candidate_entries(self, time_range: TimeRange) -> List[Entry]:
        now = time_range.end
        entries: List[Entry] = []

        for period, delta in self._periods(time_range):
            evaluations = self._evaluations(now - delta, now, label=period)
            dashboard = self.dashboard_summary(evaluations, period, now - delta, now)
            entries.append(Entry(key=f"dashboard:{period}", value=serialize(dashboard)))
            for role in ROLES:
                entries.append(
                    Entry(
                        key=f"dashboard:{period}:{role}",
                        value=serialize(self.role_view(dashboard, role)),
                    )
                )

        metric_start = max(time_range.start, now - METRIC_WINDOW)
        weekly = self._evaluations(metric_start, now, label="metrics")
        for name, records in sorted(self._by_name(weekly).items()):
            entries.append(
                Entry(key=f"metric:{name}", value=serialize(self.metric_detail(name, records)))
            )

        for period, delta in self._periods(time_range):
            start = now - delta
            records = self._evaluations(start, now, label=f"trends {period}")
            for name, named in sorted(self._by_name(records).items()):
                trend = self.trend(name, period, named, start, now)
                entries.append(Entry(key=f"trend:{name}:{period}", value=serialize(trend)))

        window = self._evaluations(time_range.start, now, label="window")
        entries.extend(self._session_entries(window))
        entries.extend(self._agent_entries(window))
        entries.extend(self._trace_entries(window, time_range))

        logger.info("Computed %d candidate entries from analytics", len(entries))
        return entries

    # ------------------------------------------------------------------
    # Payload builders
    # ------------------------------------------------------------------
    def dashboard_summary(
        self,
        records: Sequence[EvaluationRecord],
        period: str,
        start: datetime,
        end: datetime,
    ) -> Dict[str, Any]:
        metrics = []
        for name, named in sorted(self._by_name(records).items()):
            summary = self._aggregator.summarize(named)
            summary["name"] = name
            metrics.append(summary)
        overall = self._aggregator.average(self._aggregator.scores(records))
        return {
            "period": period,
            "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
            "totalEvaluations": len(records),
            "overallScore": overall,
            "metrics": metrics,
            "alerts": [
                {"metric": metric["name"], "avg": metric["avg"]}
                for metric in metrics
                if metric["avg"] is not None and metric["avg"] < ALERT_THRESHOLD
            ],
        }

    @staticmethod
    def role_view(dashboard: Dict[str, Any], role: str) -> Dict[str, Any]:
        base = {"role": role, "period": dashboard["period"]}
        if role == "executive":
            return {
                **base,
                "overallScore": dashboard["overallScore"],
                "metricCount": len(dashboard["metrics"]),
                "alertCount": len(dashboard["alerts"]),
            }
        if role == "operator":
            return {
                **base,
                "alerts": dashboard["alerts"],
                "metrics": [
                    {"name": metric["name"], "avg": metric["avg"], "count": metric["count"]}
                    for metric in dashboard["metrics"]
                ],
            }
        return {
            **base,
            "dateRange": dashboard["dateRange"],
            "totalEvaluations": dashboard["totalEvaluations"],
            "metrics": dashboard["metrics"],
        }

    def metric_detail(
        self, name: str, records: Sequence[EvaluationRecord]
    ) -> Dict[str, Any]:
        values = self._aggregator.scores(records)
        return {
            "name": name,
            "summary": self._aggregator.summarize(records),
            "histogram": self._aggregator.histogram(values, TREND_BUCKETS),
            "worstEvaluations": self._aggregator.worst_evaluations(records, WORST_TOP_N),
        }

    def trend(
        self,
        name: str,
        period: str,
        records: Sequence[EvaluationRecord],
        start: datetime,
        end: datetime,
    ) -> Dict[str, Any]:
        bucket_span = (end - start) / TREND_BUCKETS
        buckets: List[List[float]] = [[] for _ in range(TREND_BUCKETS)]
        for record in records:
            if record.score_value is None or record.timestamp < start:
                continue
            index = min(int((record.timestamp - start) / bucket_span), TREND_BUCKETS - 1)
            buckets[index].extend(self._aggregator.scores([record]))

        all_scores = self._aggregator.scores(records)
        return {
            "metric": name,
            "period": period,
            "bucketCount": TREND_BUCKETS,
            "totalEvaluations": len(all_scores),
            "overallPercentiles": self._aggregator.calculate_percentiles(all_scores),
            "trendData": [
                {
                    "startTime": (start + bucket_span * index).isoformat(),
                    "endTime": (start + bucket_span * (index + 1)).isoformat(),
                    "count": len(scores),
                    "avg": self._aggregator.average(scores),
                    "percentiles": self._aggregator.calculate_percentiles(scores),
                }
                for index, scores in enumerate(buckets)
            ],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _session_entries(self, records: Sequence[EvaluationRecord]) -> List[Entry]:
        entries = []
        sessions = self._aggregator.group_by(records, lambda record: record.session_id)
        for session_id, named in sorted(sessions.items()):
            payload = {
                "sessionId": session_id,
                "evaluationCount": len(named),
                "avgScore": self._aggregator.average(self._aggregator.scores(named)),
                "traceIds": sorted({r.trace_id for r in named if r.trace_id}),
                "firstSeen": named[0].timestamp.isoformat(),
                "lastSeen": named[-1].timestamp.isoformat(),
            }
            entries.append(Entry(key=f"session:{session_id}", value=serialize(payload)))
        return entries

    def _agent_entries(self, records: Sequence[EvaluationRecord]) -> List[Entry]:
        entries = []
        agents = self._aggregator.group_by(records, lambda record: record.agent_name)
        roster = []
        for agent_name, named in sorted(agents.items()):
            payload = {
                "agentName": agent_name,
                "evaluationCount": len(named),
                "sessionCount": len({r.session_id for r in named if r.session_id}),
                "avgScore": self._aggregator.average(self._aggregator.scores(named)),
                "lastSeen": named[-1].timestamp.isoformat(),
            }
            roster.append(
                {"agentName": agent_name, "evaluationCount": len(named)}
            )
            entries.append(Entry(key=f"agent:{agent_name}", value=serialize(payload)))
        if roster:
            entries.append(Entry(key="meta:agents", value=serialize({"agents": roster})))
        return entries

    def _trace_entries(
        self, records: Sequence[EvaluationRecord], time_range: TimeRange
    ) -> List[Entry]:
        evaluations_by_trace = self._aggregator.group_by(
            records, lambda record: record.trace_id
        )
        logger.info("Found %d unique traces with evaluations", len(evaluations_by_trace))
        if not evaluations_by_trace:
            return []

        spans = self._repository.find_spans(
            time_range.start, time_range.end, limit=self._span_limit
        )
        if len(spans) >= self._span_limit:
            logger.warning(
                "Span query returned %d results; data may be truncated", len(spans)
            )
        spans_by_trace: Dict[str, List[SpanRecord]] = {}
        for span in spans:
            spans_by_trace.setdefault(span.trace_id, []).append(span)

        entries = []
        for trace_id, named in sorted(evaluations_by_trace.items()):
            evaluations = [record.to_payload() for record in named]
            entries.append(
                Entry(
                    key=f"{TRACE_EVALUATIONS_PREFIX}{trace_id}",
                    value=serialize({"evaluations": evaluations}),
                )
            )
            entries.append(
                Entry(
                    key=f"{TRACE_PREFIX}{trace_id}",
                    value=serialize(
                        {
                            "traceId": trace_id,
                            "spans": [
                                span.to_payload()
                                for span in spans_by_trace.get(trace_id, [])
                            ],
                            "evaluations": evaluations,
                        }
                    ),
                )
            )
        return entries

    def _evaluations(
        self, start: datetime, end: datetime, *, label: str
    ) -> List[EvaluationRecord]:
        records = self._repository.find_evaluations(
            start, end, limit=self._evaluation_limit
        )
        if len(records) >= self._evaluation_limit:
            logger.warning(
                "Query returned %d results for %s; data may be truncated",
                len(records),
                label,
            )
        # canary evaluations carry deliberately degraded scores
        return [record for record in records if not record.is_canary]

    def _by_name(
        self, records: Sequence[EvaluationRecord]
    ) -> Dict[str, List[EvaluationRecord]]:
        return self._aggregator.group_by(records, lambda record: record.evaluation_name)

    @staticmethod
    def _periods(time_range: TimeRange) -> List[tuple[str, timedelta]]:
        return [
            (period, delta)
            for period, delta in PERIODS.items()
            if delta <= time_range.duration
        ]
