"""Cloudflare REST transport for Workers KV bulk writes, built on ``BaseTransport``."""

from __future__ import annotations

from typing import Any, Dict, Sequence

import httpx

from kv_sync.domain.models import Entry, WriteResult

from .base import DEFAULT_QUOTA_MARKERS, BaseTransport

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"
KV_BULK_PATH = "/accounts/{account_id}/storage/kv/namespaces/{namespace_id}/bulk"


class CloudflareAPITransport(BaseTransport):
    """Concrete transport that PUTs batches to the KV bulk endpoint."""

    TRANSPORT_KEY = "http"

    def __init__(
        self,
        http_client: httpx.Client,
        *,
        account_id: str,
        namespace_id: str,
        api_token: str,
        base_url: str = CLOUDFLARE_API_BASE,
        timeout_seconds: float = 300.0,
        quota_markers: Sequence[str] = DEFAULT_QUOTA_MARKERS,
    ) -> None:
        if not account_id:
            raise ValueError("account_id must be provided")
        if not namespace_id:
            raise ValueError("namespace_id must be provided")
        if not api_token:
            raise ValueError("api_token must be provided")
        super().__init__(quota_markers=quota_markers)
        self._http = http_client
        self._api_token = api_token
        self._timeout = timeout_seconds
        self._endpoint = base_url.rstrip("/") + KV_BULK_PATH.format(
            account_id=account_id, namespace_id=namespace_id
        )

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _put_batch(self, batch: Sequence[Entry]) -> WriteResult:
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        try:
            http_response = self._http.put(
                self._endpoint,
                content=self.serialize(batch),
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            return WriteResult.failure(f"{exc.__class__.__name__}: {exc}")
        return self._map_response(http_response)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _map_response(self, http_response: httpx.Response) -> WriteResult:
        status = http_response.status_code
        data = self._safe_json(http_response)
        detail = self._error_detail(data) or http_response.text[:500]

        # a 429 is also short-window throttling; only quota wording defers the day
        if status >= 400:
            return self.classify_failure(f"HTTP {status}: {detail}")
        if data.get("success") is False:
            return self.classify_failure(detail or "request reported success=false")
        return WriteResult.success()

    @staticmethod
    def _safe_json(http_response: httpx.Response) -> Dict[str, Any]:
        try:
            data = http_response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_detail(data: Dict[str, Any]) -> str:
        errors = data.get("errors") or []
        messages = [
            f"{error.get('code', '')} {error.get('message', '')}".strip()
            for error in errors
            if isinstance(error, dict)
        ]
        return "; ".join(message for message in messages if message)
