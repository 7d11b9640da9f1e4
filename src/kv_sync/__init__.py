"""Budgeted delta sync of computed analytics into a quota-limited KV store."""

from .core.container import DIContainer
from .core.orchestrator import SyncOrchestrator

__all__ = [
    "SyncOrchestrator",
    "DIContainer",
    "domain",
    "sync",
    "core",
    "transport",
    "storage",
    "analytics",
]
