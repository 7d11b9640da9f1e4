"""Read-only repository over directories of exported JSONL telemetry.

Evaluation records live in ``evaluations*.jsonl`` files and span records in
``traces*.jsonl`` files, searched recursively under each directory.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .interfaces import EvaluationRecord, IEvaluationRepository, SpanRecord

EVALUATION_GLOB = "evaluations*.jsonl"
SPAN_GLOB = "traces*.jsonl"

RecordT = TypeVar("RecordT", bound=BaseModel)

logger = logging.getLogger(__name__)


class JsonlEvaluationRepository(IEvaluationRepository):
    """Scans JSONL exports on every query; nothing is cached between calls."""

    def __init__(self, directories: Sequence[str | Path]):
        if not directories:
            raise ValueError("At least one data directory must be provided")
        self._directories = [Path(directory) for directory in directories]

    def find_evaluations(
        self,
        start: datetime,
        end: datetime,
        *,
        name: Optional[str] = None,
        limit: int = 10_000,
    ) -> List[EvaluationRecord]:
        matches = [
            record
            for record in self._read(EVALUATION_GLOB, EvaluationRecord)
            if start <= record.timestamp <= end
            and (name is None or record.evaluation_name == name)
        ]
        matches.sort(key=lambda record: record.timestamp)
        return matches[:limit]

    def find_spans(
        self, start: datetime, end: datetime, *, limit: int = 50_000
    ) -> List[SpanRecord]:
        matches = [
            record
            for record in self._read(SPAN_GLOB, SpanRecord)
            if start <= record.start_time <= end
        ]
        matches.sort(key=lambda record: record.start_time)
        return matches[:limit]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _files(self, pattern: str) -> Iterator[Path]:
        for directory in self._directories:
            if not directory.is_dir():
                logger.warning("Data directory %s does not exist", directory)
                continue
            yield from sorted(directory.rglob(pattern))

    def _read(self, pattern: str, model: Type[RecordT]) -> Iterator[RecordT]:
        for path in self._files(pattern):
            skipped = 0
            with path.open(encoding="utf-8") as handle:
                for line in handle:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield model.model_validate(json.loads(line))
                    except (ValueError, ValidationError):
                        skipped += 1
            if skipped:
                logger.warning("Skipped %d malformed lines in %s", skipped, path)
