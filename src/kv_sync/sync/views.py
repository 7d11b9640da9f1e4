"""Narrow typed views pulled out of otherwise opaque analytics payloads."""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set

from kv_sync.domain.models import (
    TRACE_EVALUATIONS_PREFIX,
    Entry,
    EvaluationView,
)

METRIC_PREFIX = "metric:"
WORST_EVALUATIONS_FIELD = "worstEvaluations"

logger = logging.getLogger(__name__)


def extract_evaluations_by_trace(
    entries: Iterable[Entry],
) -> Dict[str, List[EvaluationView]]:
    """Read score/timestamp views from ``evaluations:trace:<id>`` payloads."""

    views: Dict[str, List[EvaluationView]] = {}
    for entry in entries:
        if not entry.key.startswith(TRACE_EVALUATIONS_PREFIX):
            continue
        trace_id = entry.key[len(TRACE_EVALUATIONS_PREFIX) :]
        if not trace_id:
            continue
        payload = _load(entry)
        evaluations = payload.get("evaluations") if isinstance(payload, dict) else None
        if not isinstance(evaluations, list):
            continue
        views[trace_id] = [
            EvaluationView(
                trace_id=trace_id,
                score=_as_score(item.get("scoreValue")),
                timestamp_ms=parse_timestamp_ms(item.get("timestamp")),
            )
            for item in evaluations
            if isinstance(item, dict)
        ]
    return views


def extract_referenced_trace_ids(entries: Iterable[Entry]) -> Set[str]:
    """Collect trace ids called out in metric detail "worst evaluations" lists."""

    referenced: Set[str] = set()
    for entry in entries:
        if not entry.key.startswith(METRIC_PREFIX):
            continue
        payload = _load(entry)
        if not isinstance(payload, dict):
            continue
        worst = payload.get(WORST_EVALUATIONS_FIELD)
        if not isinstance(worst, list):
            continue
        for item in worst:
            if isinstance(item, dict) and isinstance(item.get("traceId"), str):
                referenced.add(item["traceId"])
    return referenced


def parse_timestamp_ms(value: Any) -> Optional[int]:
    """Accept ISO-8601 strings or epoch milliseconds; anything else is None."""

    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def _as_score(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _load(entry: Entry) -> Any:
    try:
        return json.loads(entry.value)
    except ValueError:
        logger.debug("payload_not_json", extra={"key": entry.key})
        return None
