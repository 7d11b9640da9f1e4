"""SQLite-backed store of raw evaluations and spans."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from .interfaces import EvaluationRecord, IEvaluationRepository, SpanRecord

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS evaluations (
    id TEXT PRIMARY KEY,
    timestamp_ms INTEGER NOT NULL,
    evaluation_name TEXT NOT NULL,
    trace_id TEXT,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_evaluations_time ON evaluations (timestamp_ms);
CREATE TABLE IF NOT EXISTS spans (
    span_id TEXT PRIMARY KEY,
    trace_id TEXT NOT NULL,
    start_ms INTEGER NOT NULL,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_spans_time ON spans (start_ms);
"""

_UPSERT_EVALUATION_SQL = """
INSERT INTO evaluations (id, timestamp_ms, evaluation_name, trace_id, payload)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    timestamp_ms=excluded.timestamp_ms,
    evaluation_name=excluded.evaluation_name,
    trace_id=excluded.trace_id,
    payload=excluded.payload;
"""

_UPSERT_SPAN_SQL = """
INSERT INTO spans (span_id, trace_id, start_ms, payload)
VALUES (?, ?, ?, ?)
ON CONFLICT(span_id) DO UPDATE SET
    trace_id=excluded.trace_id,
    start_ms=excluded.start_ms,
    payload=excluded.payload;
"""

_SELECT_EVALUATIONS_SQL = """
SELECT payload
FROM evaluations
WHERE timestamp_ms BETWEEN ? AND ?
ORDER BY timestamp_ms ASC
LIMIT ?;
"""

_SELECT_EVALUATIONS_BY_NAME_SQL = """
SELECT payload
FROM evaluations
WHERE timestamp_ms BETWEEN ? AND ? AND evaluation_name = ?
ORDER BY timestamp_ms ASC
LIMIT ?;
"""

_SELECT_SPANS_SQL = """
SELECT payload
FROM spans
WHERE start_ms BETWEEN ? AND ?
ORDER BY start_ms ASC
LIMIT ?;
"""


class SQLiteEvaluationRepository(IEvaluationRepository):
    """Lightweight repository focused on persistence only."""

    def __init__(self, db_path: str | Path):
        self._db_path = str(db_path)
        self._ensure_schema()

    def save_evaluation(self, record: EvaluationRecord) -> None:
        record_id = record.id or self._synthetic_id(record)
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                _UPSERT_EVALUATION_SQL,
                (
                    record_id,
                    _to_ms(record.timestamp),
                    record.evaluation_name,
                    record.trace_id,
                    json.dumps(record.to_payload()),
                ),
            )
            conn.commit()

    def save_span(self, record: SpanRecord) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                _UPSERT_SPAN_SQL,
                (
                    record.span_id,
                    record.trace_id,
                    _to_ms(record.start_time),
                    json.dumps(record.to_payload()),
                ),
            )
            conn.commit()

    def find_evaluations(
        self,
        start: datetime,
        end: datetime,
        *,
        name: Optional[str] = None,
        limit: int = 10_000,
    ) -> List[EvaluationRecord]:
        window = (_to_ms(start), _to_ms(end))
        with sqlite3.connect(self._db_path) as conn:
            if name is None:
                rows = conn.execute(_SELECT_EVALUATIONS_SQL, (*window, limit)).fetchall()
            else:
                rows = conn.execute(
                    _SELECT_EVALUATIONS_BY_NAME_SQL, (*window, name, limit)
                ).fetchall()
        return [self._row_to_evaluation(row) for row in rows]

    def find_spans(
        self, start: datetime, end: datetime, *, limit: int = 50_000
    ) -> List[SpanRecord]:
        with sqlite3.connect(self._db_path) as conn:
            rows = conn.execute(
                _SELECT_SPANS_SQL, (_to_ms(start), _to_ms(end), limit)
            ).fetchall()
        return [SpanRecord.model_validate_json(row[0]) for row in rows]

    def _ensure_schema(self) -> None:
        with sqlite3.connect(self._db_path) as conn:
            conn.executescript(_CREATE_TABLES_SQL)
            conn.commit()

    @staticmethod
    def _row_to_evaluation(row: Tuple[str]) -> EvaluationRecord:
        return EvaluationRecord.model_validate_json(row[0])

    @staticmethod
    def _synthetic_id(record: EvaluationRecord) -> str:
        return f"{record.trace_id or '-'}:{record.evaluation_name}:{_to_ms(record.timestamp)}"


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)
