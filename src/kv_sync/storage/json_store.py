"""JSON file stores for the delta table and the coverage snapshot.

Both files are disposable: a missing or unreadable file loads as "start
fresh", which at worst makes the next run resend everything.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from kv_sync.domain.exceptions import StateStoreError
from kv_sync.domain.interfaces import ICoverageStore, IStateStore
from kv_sync.domain.models import CoverageData

logger = logging.getLogger(__name__)


class _JsonFile:
    """Read/replace helper shared by the stores."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Optional[Any]:
        if not self._path.exists():
            return None
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(
                "Ignoring unreadable state file %s: %s",
                self._path,
                exc,
                extra={"path": str(self._path)},
            )
            return None

    def replace(self, payload: Any) -> None:
        """Write to a sibling temp file then swap it in."""

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", dir=str(self._path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2, sort_keys=True)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StateStoreError(
                f"Could not write {self._path}", context={"error": str(exc)}
            ) from exc


class JsonStateStore(IStateStore):
    """Flat ``{key: hash}`` table persisted between runs."""

    def __init__(self, path: str | Path):
        self._file = _JsonFile(path)

    @property
    def path(self) -> Path:
        return self._file.path

    def load(self) -> Dict[str, str]:
        data = self._file.read()
        if data is None:
            return {}
        if not isinstance(data, dict) or not all(
            isinstance(key, str) and isinstance(value, str)
            for key, value in data.items()
        ):
            logger.warning("State file %s is not a flat key/hash table", self.path)
            return {}
        return dict(data)

    def save(self, state: Dict[str, str]) -> None:
        self._file.replace(dict(state))


class JsonCoverageStore(ICoverageStore):
    """Last computed :class:`CoverageData`, stored with camelCase fields."""

    def __init__(self, path: str | Path):
        self._file = _JsonFile(path)

    @property
    def path(self) -> Path:
        return self._file.path

    def load(self) -> Optional[CoverageData]:
        data = self._file.read()
        if data is None:
            return None
        try:
            return CoverageData.model_validate(data)
        except ValidationError as exc:
            logger.warning("Ignoring invalid coverage snapshot %s: %s", self.path, exc)
            return None

    def save(self, coverage: CoverageData) -> None:
        self._file.replace(coverage.model_dump(by_alias=True))
