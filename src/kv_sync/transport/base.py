"""Transport abstractions shared by every remote bulk-put adapter."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from kv_sync.domain.models import Entry, WriteOutcome, WriteResult

DEFAULT_QUOTA_MARKERS = (
    "limit exceeded for the day",
    "daily limit",
    "quota exceeded",
    "exceeded your daily",
)


class BaseTransport(ABC):
    """Template-method base class that classifies and logs bulk puts."""

    TRANSPORT_KEY = "custom"

    def __init__(
        self,
        *,
        quota_markers: Sequence[str] = DEFAULT_QUOTA_MARKERS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._quota_markers = tuple(marker.lower() for marker in quota_markers)
        self.logger = logger or logging.getLogger(
            f"{__name__}.{self.__class__.__name__}"
        )

    def name(self) -> str:
        return self.TRANSPORT_KEY

    def bulk_put(self, batch: Sequence[Entry]) -> WriteResult:
        """Public API that aligns with IKVTransport.bulk_put."""

        if not batch:
            return WriteResult.success()
        self.logger.debug(
            "kv_bulk_put", extra={"transport": self.name(), "entries": len(batch)}
        )
        result = self._put_batch(batch)
        if result.outcome is not WriteOutcome.SUCCESS:
            self.logger.debug(
                "kv_bulk_put_rejected",
                extra={"outcome": result.outcome.value, "detail": result.detail},
            )
        return result

    @abstractmethod
    def _put_batch(self, batch: Sequence[Entry]) -> WriteResult:
        """Vendor-specific write implemented by subclasses."""

    def is_quota_error(self, detail: str) -> bool:
        lowered = detail.lower()
        return any(marker in lowered for marker in self._quota_markers)

    def classify_failure(self, detail: str) -> WriteResult:
        if self.is_quota_error(detail):
            return WriteResult.quota_exhausted(detail)
        return WriteResult.failure(detail)

    @staticmethod
    def serialize(batch: Sequence[Entry]) -> str:
        """Bulk payload: a JSON array of ``{"key", "value"}`` objects."""

        return json.dumps([{"key": entry.key, "value": entry.value} for entry in batch])
