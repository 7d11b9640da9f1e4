"""Sync pre-computed dashboard data to the remote key-value store.

Usage: kv-sync [--days=30] [--dry-run] [--budget=N]
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from kv_sync.core.config import SyncConfig
from kv_sync.core.container import DIContainer
from kv_sync.domain.exceptions import ConfigurationError, KVSyncError
from kv_sync.domain.models import TimeRange

EXIT_OK = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2

logger = logging.getLogger("kv_sync")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kv-sync", description=__doc__)
    parser.add_argument("--days", type=int, default=None, help="Time window in days")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Log intended writes without touching the remote store",
    )
    parser.add_argument(
        "--budget", type=int, default=None, help="Override the per-run write budget"
    )
    parser.add_argument(
        "--config", default=None, help="JSON or YAML config file (defaults to env)"
    )
    parser.add_argument(
        "--transport", default=None, help="Write transport (wrangler, http or a registered name)"
    )
    parser.add_argument(
        "--data-dir",
        action="append",
        dest="data_dirs",
        default=None,
        help="Directory of JSONL exports (repeatable)",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser


def configure_logging(level: str) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    root_logger.addHandler(handler)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def load_config(args: argparse.Namespace) -> SyncConfig:
    base = SyncConfig.from_file(args.config) if args.config else SyncConfig.from_env()
    return base.with_overrides(
        days=args.days,
        dry_run=args.dry_run,
        write_budget=args.budget,
        transport=args.transport,
        data_dirs=tuple(args.data_dirs) if args.data_dirs else None,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args)
        orchestrator = DIContainer.create_orchestrator(config)
    except (ConfigurationError, ValueError, FileNotFoundError) as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    try:
        report = orchestrator.run(TimeRange.last_days(config.days))
    except KVSyncError as exc:
        logger.error("Sync failed: %s", exc)
        return EXIT_RUN_FAILED

    print(report.summary_line())
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
