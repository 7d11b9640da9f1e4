import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from kv_sync.analytics.jsonl_repository import JsonlEvaluationRepository

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 1, 31, tzinfo=timezone.utc)


def _write_lines(path: Path, rows) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(row if isinstance(row, str) else json.dumps(row) for row in rows))


def test_reads_evaluations_recursively_sorted_by_time(tmp_path: Path):
    _write_lines(
        tmp_path / "b" / "evaluations-2.jsonl",
        [{"evaluationName": "relevance", "timestamp": "2024-01-10T00:00:00Z", "scoreValue": 0.2}],
    )
    _write_lines(
        tmp_path / "a" / "evaluations.jsonl",
        [
            {"evaluationName": "relevance", "timestamp": "2024-01-05T00:00:00Z", "scoreValue": 0.9},
            {"evaluationName": "toxicity", "timestamp": "2024-02-05T00:00:00Z", "scoreValue": 0.1},
        ],
    )

    records = JsonlEvaluationRepository([tmp_path]).find_evaluations(START, END)

    assert [record.score_value for record in records] == [0.9, 0.2]


def test_malformed_lines_are_skipped_with_warning(tmp_path: Path, caplog):
    _write_lines(
        tmp_path / "evaluations.jsonl",
        [
            "{broken",
            {"timestamp": "2024-01-05T00:00:00Z"},
            "",
            {"evaluationName": "relevance", "timestamp": "2024-01-05T00:00:00Z"},
        ],
    )

    records = JsonlEvaluationRepository([tmp_path]).find_evaluations(START, END)

    assert len(records) == 1
    assert "Skipped 2 malformed lines" in caplog.text


def test_reads_spans_from_trace_files(tmp_path: Path):
    _write_lines(
        tmp_path / "traces.jsonl",
        [
            {"traceId": "t1", "spanId": "s1", "name": "root", "startTime": "2024-01-02T00:00:00Z"},
            {"traceId": "t1", "spanId": "s2", "startTime": "2023-12-02T00:00:00Z"},
        ],
    )

    spans = JsonlEvaluationRepository([tmp_path]).find_spans(START, END)

    assert [span.span_id for span in spans] == ["s1"]


def test_missing_directory_warns_and_yields_nothing(tmp_path: Path, caplog):
    repo = JsonlEvaluationRepository([tmp_path / "missing"])

    assert repo.find_evaluations(START, END) == []
    assert "does not exist" in caplog.text


def test_requires_a_directory():
    with pytest.raises(ValueError):
        JsonlEvaluationRepository([])
