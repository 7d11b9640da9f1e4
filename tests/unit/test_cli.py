import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from kv_sync import cli
from kv_sync.core.container import DIContainer


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("KV_NAMESPACE_ID", "CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    # keep pytest's own log capture handlers in place
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


def _export(tmp_path: Path) -> Path:
    data_dir = tmp_path / "exports"
    data_dir.mkdir()
    timestamp = datetime.now(timezone.utc).isoformat()
    (data_dir / "evaluations.jsonl").write_text(
        json.dumps(
            {
                "evaluationName": "relevance",
                "timestamp": timestamp,
                "scoreValue": 0.4,
                "traceId": "t1",
                "sessionId": "s1",
            }
        )
    )
    return data_dir


def _config_file(tmp_path: Path, **extra) -> Path:
    path = tmp_path / "sync.json"
    data = {
        "state_path": str(tmp_path / "state" / "sync-state.json"),
        "coverage_path": str(tmp_path / "state" / "sync-coverage.json"),
        "data_dirs": [str(_export(tmp_path))],
    }
    data.update(extra)
    path.write_text(json.dumps(data))
    return path


def test_arg_parser_flags():
    args = cli.build_arg_parser().parse_args(
        ["--days", "7", "--dry-run", "--budget", "100", "--transport", "http"]
    )

    assert args.days == 7
    assert args.dry_run is True
    assert args.budget == 100
    assert args.transport == "http"


def test_dry_run_prints_summary_and_persists_nothing(tmp_path: Path, capsys):
    config_path = _config_file(tmp_path)

    exit_code = cli.main(["--config", str(config_path), "--dry-run"])

    assert exit_code == cli.EXIT_OK
    out = capsys.readouterr().out
    assert "dry_run" in out
    assert "written=" in out
    assert not (tmp_path / "state" / "sync-state.json").exists()


def test_missing_credentials_exit_code(tmp_path: Path):
    config_path = _config_file(tmp_path)

    assert cli.main(["--config", str(config_path)]) == cli.EXIT_CONFIG_ERROR


def test_invalid_budget_exit_code(tmp_path: Path):
    config_path = _config_file(tmp_path)

    assert cli.main(["--config", str(config_path), "--dry-run", "--budget", "0"]) == (
        cli.EXIT_CONFIG_ERROR
    )


def test_run_failure_exit_code(tmp_path: Path, monkeypatch):
    from kv_sync.domain.exceptions import RemoteWriteError

    class _FailingOrchestrator:
        def run(self, time_range):
            raise RemoteWriteError("boom")

    monkeypatch.setattr(
        DIContainer, "create_orchestrator", staticmethod(lambda config: _FailingOrchestrator())
    )
    config_path = _config_file(tmp_path)

    assert cli.main(["--config", str(config_path)]) == cli.EXIT_RUN_FAILED
