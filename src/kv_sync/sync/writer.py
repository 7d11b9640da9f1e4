"""Batched writes to the remote store with quota-aware early stop."""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Sequence

from kv_sync.domain.exceptions import RemoteWriteError
from kv_sync.domain.interfaces import IKVTransport
from kv_sync.domain.models import (
    Entry,
    WriteOutcome,
    WriteSummary,
    trace_id_from_key,
)

DEFAULT_BATCH_SIZE = 9_500
REMOTE_BATCH_LIMIT = 10_000


class BatchedWriter:
    """Splits entries into bounded batches and reports how many landed.

    Quota exhaustion stops the run's writes without raising; the caller
    treats the unwritten tail as deferred. Any other transport failure
    raises :class:`RemoteWriteError`.
    """

    def __init__(
        self,
        transport: IKVTransport,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dry_run: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")
        if batch_size > REMOTE_BATCH_LIMIT:
            raise ValueError(
                f"batch_size must not exceed the remote limit of {REMOTE_BATCH_LIMIT}"
            )
        self._transport = transport
        self._batch_size = batch_size
        self._dry_run = dry_run
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def write(self, entries: Sequence[Entry]) -> WriteSummary:
        """Write entries in order; the first ``written`` of them are confirmed."""

        written = 0
        batches = list(self._batches(entries))
        for index, batch in enumerate(batches, start=1):
            label = self._batch_label(index, len(batches))
            if self._dry_run:
                self.log_dry_run(batch, label)
                written += len(batch)
                continue

            result = self._transport.bulk_put(batch)
            if result.outcome is WriteOutcome.SUCCESS:
                written += len(batch)
                self.logger.info(
                    "PUT %d entries%s",
                    len(batch),
                    label,
                    extra={"transport": self._transport.name(), "written": written},
                )
                continue

            if result.outcome is WriteOutcome.QUOTA_EXHAUSTED:
                self.logger.warning(
                    "Remote write quota exhausted%s; deferring %d entries to the next run",
                    label,
                    len(entries) - written,
                    extra={"detail": result.detail, "written": written},
                )
                return WriteSummary(
                    requested=len(entries), written=written, quota_exhausted=True
                )

            raise RemoteWriteError(
                f"Bulk put failed for {len(batch)} entries{label}",
                written=written,
                context={
                    "transport": self._transport.name(),
                    "batch": index,
                    "detail": result.detail,
                },
            )

        return WriteSummary(requested=len(entries), written=written)

    def log_dry_run(self, batch: Sequence[Entry], label: str) -> None:
        """Hook for reporting writes that a dry run skips."""

        for entry in batch:
            self.logger.info(
                "[dry-run] PUT %s (%d bytes)", entry.key, len(entry.value.encode("utf-8"))
            )
        self.logger.info("[dry-run] would PUT %d entries%s", len(batch), label)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _batches(self, entries: Sequence[Entry]) -> Iterator[List[Entry]]:
        """Cut bounded batches, ending one entry early rather than split a trace pair."""

        start = 0
        while start < len(entries):
            end = min(start + self._batch_size, len(entries))
            if end < len(entries) and end - start > 1 and _same_trace(
                entries[end - 1], entries[end]
            ):
                end -= 1
            yield list(entries[start:end])
            start = end

    @staticmethod
    def _batch_label(index: int, total: int) -> str:
        if total <= 1:
            return ""
        return f" (batch {index}/{total})"


def _same_trace(first: Entry, second: Entry) -> bool:
    trace_id = trace_id_from_key(first.key)
    return trace_id is not None and trace_id == trace_id_from_key(second.key)
