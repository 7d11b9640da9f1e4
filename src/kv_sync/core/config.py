"""Sync configuration management helpers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from kv_sync.domain.exceptions import MissingCredentialsError
from kv_sync.transport.base import DEFAULT_QUOTA_MARKERS

ENV_PREFIX = "KV_SYNC_"


def _str_to_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def _str_to_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Invalid integer value: {value}") from exc


def _str_to_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Invalid number value: {value}") from exc


def _split_list(value: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class SyncConfig:
    """Immutable configuration object loaded from env or files."""

    write_budget: int = 450
    min_trace_budget: int = 100
    batch_size: int = 9_500
    days: int = 30
    transport: str = "wrangler"
    namespace_id: Optional[str] = None
    account_id: Optional[str] = None
    api_token: Optional[str] = None
    state_path: str = ".kv-sync/sync-state.json"
    coverage_path: str = ".kv-sync/sync-coverage.json"
    data_dirs: Tuple[str, ...] = field(default_factory=tuple)
    sqlite_path: Optional[str] = None
    timeout_seconds: float = 300.0
    heartbeat_interval_seconds: int = 3_600
    quota_error_markers: Tuple[str, ...] = DEFAULT_QUOTA_MARKERS
    dry_run: bool = False

    def __post_init__(self) -> None:
        # file and CLI sources may hand over lists
        object.__setattr__(self, "data_dirs", tuple(self.data_dirs))
        object.__setattr__(
            self, "quota_error_markers", tuple(self.quota_error_markers)
        )
        object.__setattr__(self, "transport", self.transport.lower())
        self.validate()

    @classmethod
    def from_env(cls) -> "SyncConfig":
        defaults = cls()
        env = os.environ
        return cls(
            write_budget=_str_to_int(
                env.get(f"{ENV_PREFIX}WRITE_BUDGET"), defaults.write_budget
            ),
            min_trace_budget=_str_to_int(
                env.get(f"{ENV_PREFIX}MIN_TRACE_BUDGET"), defaults.min_trace_budget
            ),
            batch_size=_str_to_int(
                env.get(f"{ENV_PREFIX}BATCH_SIZE"), defaults.batch_size
            ),
            days=_str_to_int(env.get(f"{ENV_PREFIX}DAYS"), defaults.days),
            transport=env.get(f"{ENV_PREFIX}TRANSPORT", defaults.transport),
            namespace_id=env.get("KV_NAMESPACE_ID") or defaults.namespace_id,
            account_id=env.get("CLOUDFLARE_ACCOUNT_ID") or defaults.account_id,
            api_token=env.get("CLOUDFLARE_API_TOKEN") or defaults.api_token,
            state_path=env.get(f"{ENV_PREFIX}STATE_PATH", defaults.state_path),
            coverage_path=env.get(
                f"{ENV_PREFIX}COVERAGE_PATH", defaults.coverage_path
            ),
            data_dirs=_split_list(
                env.get(f"{ENV_PREFIX}DATA_DIRS"), defaults.data_dirs
            ),
            sqlite_path=env.get(f"{ENV_PREFIX}SQLITE_PATH") or defaults.sqlite_path,
            timeout_seconds=_str_to_float(
                env.get(f"{ENV_PREFIX}TIMEOUT_SECONDS"), defaults.timeout_seconds
            ),
            heartbeat_interval_seconds=_str_to_int(
                env.get(f"{ENV_PREFIX}HEARTBEAT_INTERVAL_SECONDS"),
                defaults.heartbeat_interval_seconds,
            ),
            quota_error_markers=_split_list(
                env.get(f"{ENV_PREFIX}QUOTA_ERROR_MARKERS"),
                defaults.quota_error_markers,
            ),
            dry_run=_str_to_bool(env.get(f"{ENV_PREFIX}DRY_RUN"), defaults.dry_run),
        )

    @classmethod
    def from_file(cls, path: str) -> "SyncConfig":
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        raw = file_path.read_text()
        data: Dict[str, Any]
        suffix = file_path.suffix.lower()
        if suffix == ".json":
            data = json.loads(raw)
        elif suffix in {".yaml", ".yml"}:
            data = cls._load_yaml(raw)
        else:
            raise ValueError("Unsupported config format. Use JSON or YAML.")
        return cls(**cls._merge_with_defaults(data))

    def with_overrides(self, **overrides: Any) -> "SyncConfig":
        """Return a copy with every non-None override applied."""

        applied = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **applied) if applied else self

    def validate(self) -> None:
        if self.write_budget < 1:
            raise ValueError("write_budget must be at least 1 (heartbeat slot)")
        if self.min_trace_budget < 0:
            raise ValueError("min_trace_budget must be non-negative")
        if not 0 < self.batch_size <= 10_000:
            raise ValueError("batch_size must be between 1 and 10000")
        if self.days <= 0:
            raise ValueError("days must be greater than zero")
        if not self.transport.strip():
            raise ValueError("transport must name a registered transport")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        if self.heartbeat_interval_seconds < 0:
            raise ValueError("heartbeat_interval_seconds must be non-negative")

    def require_credentials(self) -> None:
        """Fail fast when the selected transport cannot authenticate."""

        if self.dry_run:
            return
        missing = []
        if not self.namespace_id:
            missing.append("KV_NAMESPACE_ID")
        if self.transport == "http":
            if not self.account_id:
                missing.append("CLOUDFLARE_ACCOUNT_ID")
            if not self.api_token:
                missing.append("CLOUDFLARE_API_TOKEN")
        if missing:
            raise MissingCredentialsError(
                f"Missing remote store credentials for transport '{self.transport}'",
                context={"missing": missing},
            )

    @classmethod
    def _merge_with_defaults(cls, data: Dict[str, Any]) -> Dict[str, Any]:
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")
        defaults = cls()
        return {name: data.get(name, getattr(defaults, name)) for name in known}

    @staticmethod
    def _load_yaml(raw: str) -> Dict[str, Any]:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise RuntimeError("PyYAML is required to parse YAML config files") from exc
        return yaml.safe_load(raw) or {}
