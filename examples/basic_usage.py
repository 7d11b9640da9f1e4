"""Dry-run sync of local JSONL exports using the built-in DI container."""

from kv_sync.core.config import SyncConfig
from kv_sync.core.container import DIContainer
from kv_sync.domain.models import TimeRange


def main() -> None:
    config = SyncConfig(data_dirs=("telemetry-exports",), dry_run=True)
    orchestrator = DIContainer.create_orchestrator(config)

    report = orchestrator.run(TimeRange.last_days(config.days))
    print("Changed:", report.changed)
    print("Would write:", report.written)
    print("Deferred:", report.deferred)
    if report.coverage is not None:
        print("Coverage:", f"{report.coverage.coverage_percent}%")


if __name__ == "__main__":
    main()
