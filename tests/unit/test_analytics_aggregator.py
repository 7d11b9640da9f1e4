from datetime import datetime, timedelta, timezone

import pytest

from kv_sync.analytics.aggregator import AnalyticsAggregator
from kv_sync.analytics.interfaces import EvaluationRecord


def _record(idx: int, score, name: str = "relevance", session: str = "s1") -> EvaluationRecord:
    return EvaluationRecord(
        evaluation_name=name,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=idx),
        score_value=score,
        trace_id=f"t{idx}",
        session_id=session,
    )


def test_scores_skip_missing_and_non_finite():
    agg = AnalyticsAggregator()
    records = [_record(1, 0.5), _record(2, None), _record(3, float("nan"))]
    assert agg.scores(records) == [0.5]


def test_calculate_percentiles_interpolates():
    agg = AnalyticsAggregator()
    percentiles = agg.calculate_percentiles([0.1, 0.2, 0.3, 0.4, 0.5])

    assert percentiles["p50"] == pytest.approx(0.3)
    assert percentiles["p90"] == pytest.approx(0.46)
    assert set(percentiles) == {"p10", "p25", "p50", "p75", "p90", "p99"}


def test_calculate_percentiles_empty_returns_zeros():
    assert set(AnalyticsAggregator().calculate_percentiles([]).values()) == {0.0}


def test_summarize_reports_counts_and_extremes():
    agg = AnalyticsAggregator()
    summary = agg.summarize([_record(1, 0.2), _record(2, 0.8), _record(3, None)])

    assert summary["count"] == 3
    assert summary["scored"] == 2
    assert summary["avg"] == pytest.approx(0.5)
    assert summary["min"] == 0.2
    assert summary["max"] == 0.8


def test_group_by_drops_missing_keys():
    agg = AnalyticsAggregator()
    records = [_record(1, 0.5, session="a"), _record(2, 0.5, session="b"), _record(3, 0.5, session=None)]

    grouped = agg.group_by(records, lambda record: record.session_id)

    assert set(grouped) == {"a", "b"}


def test_worst_evaluations_sorted_ascending():
    agg = AnalyticsAggregator()
    records = [_record(1, 0.9), _record(2, 0.1), _record(3, 0.5), _record(4, None)]

    worst = agg.worst_evaluations(records, top_n=2)

    assert [item["traceId"] for item in worst] == ["t2", "t3"]
    assert worst[0]["scoreValue"] == 0.1
    assert worst[0]["evaluationName"] == "relevance"


def test_histogram_buckets_unit_interval():
    buckets = AnalyticsAggregator().histogram([0.0, 0.05, 0.55, 1.0, 1.2], bucket_count=10)

    assert buckets[0] == 2
    assert buckets[5] == 1
    assert buckets[9] == 1
    assert sum(buckets) == 4
