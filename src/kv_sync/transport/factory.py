"""Transport factory that wires credentials and HTTP clients to adapters."""

from __future__ import annotations

from typing import Callable, Dict, Optional

import httpx

from kv_sync.core.config import SyncConfig
from kv_sync.domain.exceptions import ConfigurationError
from kv_sync.domain.interfaces import IKVTransport

from .api_transport import CloudflareAPITransport
from .wrangler_transport import WranglerTransport

TransportBuilder = Callable[[SyncConfig], IKVTransport]


class TransportFactory:
    """Builds the transport named in the config; custom builders can be registered."""

    def __init__(
        self,
        http_client_factory: Optional[Callable[[SyncConfig], httpx.Client]] = None,
    ) -> None:
        self._http_client_factory = http_client_factory or self._default_http_client
        self._registry: Dict[str, TransportBuilder] = {}
        self._register_defaults()

    def create(self, config: SyncConfig) -> IKVTransport:
        try:
            builder = self._registry[config.transport]
        except KeyError as exc:
            raise ConfigurationError(
                f"No transport registered for '{config.transport}'",
                context={"available": sorted(self._registry)},
            ) from exc
        return builder(config)

    def register_transport(self, name: str, builder: TransportBuilder) -> None:
        self._registry[name.lower()] = builder

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _register_defaults(self) -> None:
        self.register_transport("wrangler", self._build_wrangler)
        self.register_transport("http", self._build_api)

    @staticmethod
    def _build_wrangler(config: SyncConfig) -> IKVTransport:
        return WranglerTransport(
            config.namespace_id or "",
            timeout_seconds=config.timeout_seconds,
            quota_markers=config.quota_error_markers,
        )

    def _build_api(self, config: SyncConfig) -> IKVTransport:
        return CloudflareAPITransport(
            self._http_client_factory(config),
            account_id=config.account_id or "",
            namespace_id=config.namespace_id or "",
            api_token=config.api_token or "",
            timeout_seconds=config.timeout_seconds,
            quota_markers=config.quota_error_markers,
        )

    @staticmethod
    def _default_http_client(config: SyncConfig) -> httpx.Client:
        return httpx.Client(timeout=config.timeout_seconds)
