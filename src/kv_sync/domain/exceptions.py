"""Exception hierarchy for sync failures that must abort a run."""

from __future__ import annotations

from typing import Any, Mapping


class KVSyncError(Exception):
    """Base class for all domain-level errors raised by the sync job."""

    default_message = "KV sync error occurred"

    def __init__(
        self, message: str | None = None, *, context: Mapping[str, Any] | None = None
    ):
        self.message = message or self.default_message
        self.context: Mapping[str, Any] = dict(context or {})
        formatted = self._format_message()
        super().__init__(formatted)

    def _format_message(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class ConfigurationError(KVSyncError):
    """Sync configuration is invalid or incomplete."""

    default_message = "Invalid sync configuration"


class MissingCredentialsError(ConfigurationError):
    """Remote store credentials required by the selected transport are absent."""

    default_message = "Remote store credentials are missing"


class RemoteWriteError(KVSyncError):
    """A bulk write failed for a reason other than quota exhaustion."""

    default_message = "Remote bulk write failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        written: int = 0,
        context: Mapping[str, Any] | None = None,
    ):
        self.written = written
        super().__init__(message, context=context)


class StateStoreError(KVSyncError):
    """Local sync state could not be persisted."""

    default_message = "Failed to persist sync state"
