import json
from pathlib import Path

import pytest

from kv_sync.core.config import SyncConfig
from kv_sync.domain.exceptions import ConfigurationError, MissingCredentialsError
from kv_sync.transport.base import DEFAULT_QUOTA_MARKERS


def test_sync_config_defaults():
    config = SyncConfig()
    assert config.write_budget == 450
    assert config.min_trace_budget == 100
    assert config.batch_size == 9_500
    assert config.days == 30
    assert config.transport == "wrangler"
    assert config.timeout_seconds == 300.0
    assert config.quota_error_markers == DEFAULT_QUOTA_MARKERS
    assert config.dry_run is False


def test_sync_config_from_env(monkeypatch):
    monkeypatch.setenv("KV_SYNC_WRITE_BUDGET", "900")
    monkeypatch.setenv("KV_SYNC_DAYS", "7")
    monkeypatch.setenv("KV_SYNC_TRANSPORT", "HTTP")
    monkeypatch.setenv("KV_SYNC_DATA_DIRS", "exports/a, exports/b")
    monkeypatch.setenv("KV_SYNC_DRY_RUN", "yes")
    monkeypatch.setenv("KV_NAMESPACE_ID", "ns-1")
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", "acct-1")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "secret")

    config = SyncConfig.from_env()

    assert config.write_budget == 900
    assert config.days == 7
    assert config.transport == "http"
    assert config.data_dirs == ("exports/a", "exports/b")
    assert config.dry_run is True
    assert config.namespace_id == "ns-1"
    assert config.account_id == "acct-1"
    assert config.api_token == "secret"


def test_sync_config_from_env_rejects_bad_integer(monkeypatch):
    monkeypatch.setenv("KV_SYNC_WRITE_BUDGET", "lots")
    with pytest.raises(ValueError):
        SyncConfig.from_env()


def test_sync_config_from_file_json(tmp_path: Path):
    path = tmp_path / "sync.json"
    path.write_text(
        json.dumps({"write_budget": 200, "data_dirs": ["exports"], "dry_run": True})
    )

    config = SyncConfig.from_file(str(path))

    assert config.write_budget == 200
    assert config.data_dirs == ("exports",)
    assert config.dry_run is True
    assert config.batch_size == 9_500


def test_sync_config_from_file_yaml(tmp_path: Path):
    yaml = pytest.importorskip("yaml")
    path = tmp_path / "sync.yaml"
    path.write_text(yaml.safe_dump({"transport": "http", "timeout_seconds": 60}))

    config = SyncConfig.from_file(str(path))

    assert config.transport == "http"
    assert config.timeout_seconds == 60


def test_sync_config_from_file_rejects_unknown_keys(tmp_path: Path):
    path = tmp_path / "sync.json"
    path.write_text(json.dumps({"write_budgett": 10}))
    with pytest.raises(ValueError):
        SyncConfig.from_file(str(path))


def test_sync_config_from_file_missing(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        SyncConfig.from_file(str(tmp_path / "nope.json"))


def test_sync_config_from_file_unsupported_format(tmp_path: Path):
    path = tmp_path / "sync.toml"
    path.write_text("write_budget = 1")
    with pytest.raises(ValueError):
        SyncConfig.from_file(str(path))


@pytest.mark.parametrize(
    "overrides",
    [
        {"write_budget": 0},
        {"batch_size": 10_001},
        {"days": 0},
        {"transport": "  "},
        {"timeout_seconds": 0},
        {"min_trace_budget": -1},
    ],
)
def test_sync_config_validation(overrides):
    with pytest.raises(ValueError):
        SyncConfig(**overrides)


def test_with_overrides_ignores_none():
    config = SyncConfig().with_overrides(days=7, write_budget=None, dry_run=None)

    assert config.days == 7
    assert config.write_budget == 450
    assert config.dry_run is False


def test_require_credentials_wrangler_needs_namespace():
    with pytest.raises(MissingCredentialsError) as exc_info:
        SyncConfig().require_credentials()

    assert exc_info.value.context["missing"] == ["KV_NAMESPACE_ID"]
    assert isinstance(exc_info.value, ConfigurationError)


def test_require_credentials_http_needs_account_and_token():
    config = SyncConfig(transport="http", namespace_id="ns")

    with pytest.raises(MissingCredentialsError) as exc_info:
        config.require_credentials()

    assert exc_info.value.context["missing"] == [
        "CLOUDFLARE_ACCOUNT_ID",
        "CLOUDFLARE_API_TOKEN",
    ]


def test_require_credentials_skipped_for_dry_run():
    SyncConfig(dry_run=True).require_credentials()


def test_sync_config_accepts_registered_transport_names():
    config = SyncConfig(transport="memory")

    assert config.transport == "memory"
