"""Demonstrates registering a custom transport with the transport factory."""

from typing import Dict, Sequence

from kv_sync.core.config import SyncConfig
from kv_sync.core.container import DIContainer
from kv_sync.domain.models import Entry, TimeRange, WriteResult
from kv_sync.transport.base import BaseTransport
from kv_sync.transport.factory import TransportFactory


class InMemoryTransport(BaseTransport):
    """Keeps every written entry in a dict; handy for local previews."""

    TRANSPORT_KEY = "memory"

    def __init__(self, capacity: int = 1_000) -> None:
        super().__init__()
        self.store: Dict[str, str] = {}
        self._capacity = capacity

    def _put_batch(self, batch: Sequence[Entry]) -> WriteResult:
        if len(self.store) + len(batch) > self._capacity:
            return WriteResult.quota_exhausted("daily limit reached for the preview store")
        self.store.update({entry.key: entry.value for entry in batch})
        return WriteResult.success()


def main() -> None:
    memory = InMemoryTransport()
    factory = TransportFactory()
    factory.register_transport(InMemoryTransport.TRANSPORT_KEY, lambda config: memory)

    config = SyncConfig(
        transport=InMemoryTransport.TRANSPORT_KEY,
        namespace_id="preview",
        data_dirs=("telemetry-exports",),
    )
    orchestrator = DIContainer.create_orchestrator(config, transport_factory=factory)
    report = orchestrator.run(TimeRange.last_days(config.days))

    print(report.summary_line())
    print("Stored keys:", sorted(memory.store)[:10])


if __name__ == "__main__":
    main()
