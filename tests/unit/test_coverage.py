from datetime import datetime, timedelta, timezone

import pytest

from kv_sync.domain.models import COVERAGE_KEY
from kv_sync.sync.coverage import (
    CoverageEstimator,
    coverage_needs_write,
    coverage_stable_hash,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def estimator() -> CoverageEstimator:
    return CoverageEstimator()


def test_estimate_counts_synced_traces(estimator: CoverageEstimator):
    state = {"trace:a": "h1", "evaluations:trace:a": "h2", "trace:b": "h3"}

    coverage = estimator.estimate(state, {"a", "b", "c", "d"}, now=NOW)

    assert coverage.total_traces == 4
    assert coverage.synced_traces == 2
    assert coverage.coverage_percent == 50.0
    assert coverage.referenced_coverage is None


def test_estimate_with_no_traces_reports_zero_percent(estimator: CoverageEstimator):
    coverage = estimator.estimate({}, set(), now=NOW)

    assert coverage.total_traces == 0
    assert coverage.coverage_percent == 0.0
    assert coverage.runs_remaining == 0


def test_referenced_coverage_only_counts_known_traces(estimator: CoverageEstimator):
    state = {"trace:a": "h1"}

    coverage = estimator.estimate(
        state, {"a", "b"}, referenced_trace_ids={"a", "b", "ghost"}, now=NOW
    )

    assert coverage.referenced_coverage == 50.0


def test_percent_rounded_to_one_decimal(estimator: CoverageEstimator):
    coverage = estimator.estimate({"trace:a": "h"}, {"a", "b", "c"}, now=NOW)

    assert coverage.coverage_percent == 33.3


@pytest.mark.parametrize(
    "changed,budget,expected",
    [(0, 100, 0), (100, 100, 0), (350, 100, 3), (402, 100, 4), (10, 0, None), (0, 0, 0)],
)
def test_runs_remaining(changed, budget, expected):
    assert CoverageEstimator.runs_remaining(changed, budget) == expected


def test_unchanged_estimate_keeps_previous_timestamp(estimator: CoverageEstimator):
    state = {"trace:a": "h"}
    first = estimator.estimate(state, {"a"}, now=NOW)

    later = NOW + timedelta(hours=2)
    second = estimator.estimate(state, {"a"}, now=later, previous=first)

    assert second.timestamp == first.timestamp
    assert second.last_checked == later.isoformat()


def test_changed_estimate_takes_new_timestamp(estimator: CoverageEstimator):
    first = estimator.estimate({}, {"a"}, now=NOW)

    later = NOW + timedelta(hours=2)
    second = estimator.estimate({"trace:a": "h"}, {"a"}, now=later, previous=first)

    assert second.timestamp == later.isoformat()


def test_last_sync_carried_over_from_previous(estimator: CoverageEstimator):
    first = estimator.estimate({}, set(), now=NOW, last_sync="2024-06-01T11:00:00.000Z")

    second = estimator.estimate({}, set(), now=NOW, previous=first)

    assert second.last_sync == "2024-06-01T11:00:00.000Z"


def test_coverage_needs_write_ignores_timestamps(estimator: CoverageEstimator):
    coverage = estimator.estimate({"trace:a": "h"}, {"a", "b"}, now=NOW)
    state = {COVERAGE_KEY: coverage_stable_hash(coverage)}

    later = estimator.estimate(
        {"trace:a": "h"}, {"a", "b"}, now=NOW + timedelta(days=1)
    )

    assert not coverage_needs_write(later, state)
    assert coverage_needs_write(later, {})


def test_coverage_serializes_with_camel_case(estimator: CoverageEstimator):
    payload = estimator.estimate({}, {"a"}, now=NOW).to_json()

    assert '"totalTraces":1' in payload
    assert '"coveragePercent":0.0' in payload
    assert '"lastChecked"' in payload
