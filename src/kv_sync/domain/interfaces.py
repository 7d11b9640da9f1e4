"""Domain-level interfaces defining contracts for sync collaborators."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence

from .models import CoverageData, Entry, TimeRange, WriteResult


class IAnalyticsSource(Protocol):
    """Produces every entry the front end could read, fully serialized."""

    def compute_candidate_entries(self, time_range: TimeRange) -> List[Entry]:
        """Return dashboard/metric/trend/session/agent and trace entries for the window."""


class IKVTransport(Protocol):
    """Moves one bounded batch into the remote key-value store."""

    def bulk_put(self, batch: Sequence[Entry]) -> WriteResult:
        """Write the batch and classify the outcome; must not raise for vendor errors."""

    def name(self) -> str:
        """Stable identifier used in logs."""


class IStateStore(Protocol):
    """Loads and saves the key -> content hash delta table."""

    def load(self) -> Dict[str, str]:
        """Return the persisted table, or an empty one when absent or unreadable."""

    def save(self, state: Dict[str, str]) -> None:
        """Persist the table, replacing any previous version."""


class ICoverageStore(Protocol):
    """Loads and saves the last computed coverage snapshot."""

    def load(self) -> Optional[CoverageData]:
        """Return the previous snapshot, or None when absent or unreadable."""

    def save(self, coverage: CoverageData) -> None:
        """Persist the snapshot, replacing any previous version."""
