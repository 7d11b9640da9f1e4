"""Content-addressed delta tracking between computed entries and synced state.

Every function here is pure: the caller loads the state table, passes it in,
and persists whatever comes back. The table maps a remote key to a short
digest of the value last confirmed written under it.
"""

from __future__ import annotations

import hashlib
from typing import Dict, Iterable, List, Mapping, Sequence

from kv_sync.domain.models import SENTINEL_KEYS, Entry, trace_id_from_key

HASH_LENGTH = 16


def content_hash(value: str) -> str:
    """Deterministic short digest of a serialized value."""

    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:HASH_LENGTH]


def filter_changed(
    entries: Sequence[Entry], state: Mapping[str, str]
) -> List[Entry]:
    """Return entries whose value differs from the last confirmed write."""

    return [
        entry for entry in entries if state.get(entry.key) != content_hash(entry.value)
    ]


def record_written(
    state: Mapping[str, str], written: Iterable[Entry]
) -> Dict[str, str]:
    """Return a new table with the hashes of entries confirmed written."""

    updated = dict(state)
    for entry in written:
        updated[entry.key] = content_hash(entry.value)
    return updated


def prune_state(
    state: Mapping[str, str], candidate_keys: Iterable[str]
) -> Dict[str, str]:
    """Drop keys the analytics source no longer produces, keeping sentinels."""

    keep = set(candidate_keys) | SENTINEL_KEYS
    return {key: digest for key, digest in state.items() if key in keep}


def complete_trace_pairs(
    changed: Sequence[Entry], candidates: Sequence[Entry]
) -> List[Entry]:
    """Pull in the partner of any trace entry that changed on its own.

    A trace is served from two keys that must land together. If an earlier
    run confirmed only one half (a quota stop between batches), the unchanged
    half is re-sent alongside the changed one.
    """

    changed_traces = {
        trace_id
        for trace_id in (trace_id_from_key(entry.key) for entry in changed)
        if trace_id is not None
    }
    if not changed_traces:
        return list(changed)

    changed_keys = {entry.key for entry in changed}
    partners = {
        entry.key: entry
        for entry in candidates
        if entry.key not in changed_keys
        and trace_id_from_key(entry.key) in changed_traces
    }
    if not partners:
        return list(changed)

    # keep candidate order so each pair stays in its produced sequence
    candidate_keys = {entry.key for entry in candidates}
    completed = [
        entry
        for entry in candidates
        if entry.key in changed_keys or entry.key in partners
    ]
    completed.extend(entry for entry in changed if entry.key not in candidate_keys)
    return completed
