"""Dependency injection container for building fully-wired sync orchestrators."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from kv_sync.analytics.aggregator import AnalyticsAggregator
from kv_sync.analytics.builder import CandidateBuilder
from kv_sync.analytics.interfaces import IEvaluationRepository
from kv_sync.analytics.jsonl_repository import JsonlEvaluationRepository
from kv_sync.analytics.sqlite_repository import SQLiteEvaluationRepository
from kv_sync.core.config import SyncConfig
from kv_sync.core.orchestrator import SyncOrchestrator
from kv_sync.domain.exceptions import ConfigurationError
from kv_sync.domain.interfaces import IAnalyticsSource, IKVTransport
from kv_sync.storage.json_store import JsonCoverageStore, JsonStateStore
from kv_sync.sync.writer import BatchedWriter
from kv_sync.transport.factory import TransportFactory

DRY_RUN_NAMESPACE = "dry-run"


class DIContainer:
    """Factory helpers that assemble a SyncOrchestrator with default wiring."""

    @staticmethod
    def create_orchestrator(
        config: Optional[SyncConfig] = None,
        *,
        source: Optional[IAnalyticsSource] = None,
        transport: Optional[IKVTransport] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> SyncOrchestrator:
        cfg = config or SyncConfig.from_env()
        cfg.require_credentials()

        resolved_source = source or DIContainer._build_source(cfg)
        resolved_transport = transport or DIContainer._build_transport(
            cfg, transport_factory or TransportFactory()
        )
        writer = BatchedWriter(
            resolved_transport, batch_size=cfg.batch_size, dry_run=cfg.dry_run
        )
        return SyncOrchestrator(
            resolved_source,
            writer,
            JsonStateStore(cfg.state_path),
            JsonCoverageStore(cfg.coverage_path),
            write_budget=cfg.write_budget,
            min_trace_budget=cfg.min_trace_budget,
            heartbeat_interval_seconds=cfg.heartbeat_interval_seconds,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _build_source(config: SyncConfig) -> IAnalyticsSource:
        return CandidateBuilder(
            DIContainer._build_repository(config), AnalyticsAggregator()
        )

    @staticmethod
    def _build_repository(config: SyncConfig) -> IEvaluationRepository:
        if config.sqlite_path:
            return SQLiteEvaluationRepository(config.sqlite_path)
        if config.data_dirs:
            return JsonlEvaluationRepository(config.data_dirs)
        raise ConfigurationError(
            "No analytics backend configured; set data_dirs or sqlite_path"
        )

    @staticmethod
    def _build_transport(
        config: SyncConfig, factory: TransportFactory
    ) -> IKVTransport:
        if config.dry_run:
            # a dry run never reaches the transport; fill in placeholders
            config = replace(
                config,
                namespace_id=config.namespace_id or DRY_RUN_NAMESPACE,
                account_id=config.account_id or DRY_RUN_NAMESPACE,
                api_token=config.api_token or DRY_RUN_NAMESPACE,
            )
        return factory.create(config)
