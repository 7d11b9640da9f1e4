"""Wrangler CLI transport: ``wrangler kv bulk put`` run as a subprocess."""

from __future__ import annotations

import os
import subprocess
import tempfile
from typing import List, Optional, Sequence

from kv_sync.domain.models import Entry, WriteResult

from .base import DEFAULT_QUOTA_MARKERS, BaseTransport

DEFAULT_COMMAND = ("npx", "wrangler")


class WranglerTransport(BaseTransport):
    """Writes each batch through a temporary bulk file handed to wrangler.

    Works with a local wrangler OAuth session as well as with
    ``CLOUDFLARE_API_TOKEN`` in CI, since wrangler resolves auth itself.
    """

    TRANSPORT_KEY = "wrangler"

    def __init__(
        self,
        namespace_id: str,
        *,
        timeout_seconds: float = 300.0,
        command: Sequence[str] = DEFAULT_COMMAND,
        quota_markers: Sequence[str] = DEFAULT_QUOTA_MARKERS,
    ) -> None:
        if not namespace_id:
            raise ValueError("namespace_id must be provided")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        super().__init__(quota_markers=quota_markers)
        self._namespace_id = namespace_id
        self._timeout = timeout_seconds
        self._command = tuple(command)

    def build_args(self, bulk_file: str) -> List[str]:
        return [
            *self._command,
            "kv",
            "bulk",
            "put",
            bulk_file,
            "--namespace-id",
            self._namespace_id,
            "--remote",
        ]

    def _put_batch(self, batch: Sequence[Entry]) -> WriteResult:
        fd, bulk_file = tempfile.mkstemp(prefix="kv-sync-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(self.serialize(batch))
            completed = self._run(self.build_args(bulk_file))
        except subprocess.TimeoutExpired:
            return WriteResult.failure(
                f"wrangler timed out after {self._timeout:g}s"
            )
        except OSError as exc:
            return WriteResult.failure(
                f"could not run wrangler ({exc}); ensure it is installed and authenticated"
            )
        finally:
            self._remove(bulk_file)

        if completed.returncode == 0:
            return WriteResult.success()
        output = "\n".join(
            part.strip() for part in (completed.stderr, completed.stdout) if part
        )
        detail = output or f"wrangler exited with status {completed.returncode}"
        return self.classify_failure(detail)

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=self._timeout,
            check=False,
        )

    def _remove(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logger.warning("Could not remove bulk file %s: %s", path, exc)
