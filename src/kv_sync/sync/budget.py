"""Split of the per-run write budget between high-priority and trace entries."""

from __future__ import annotations

import logging

from kv_sync.domain.models import BudgetAllocation

MIN_TRACE_BUDGET = 100
HEARTBEAT_SLOTS = 1
COVERAGE_SLOTS = 1

logger = logging.getLogger(__name__)


def compute_budget_allocation(
    high_priority_count: int,
    write_budget: int,
    *,
    min_trace_budget: int = MIN_TRACE_BUDGET,
    reserved_slots: int = HEARTBEAT_SLOTS,
) -> BudgetAllocation:
    """Reserve bookkeeping slots and a trace floor, give the rest to high priority.

    ``reserved_slots`` covers the writes the caller makes outside the data
    plan (the heartbeat, and the coverage record when the caller writes it).
    The trace share is rounded down to an even number so the two entries of a
    trace never straddle the truncation point.
    """

    if write_budget < 0:
        raise ValueError("write_budget must be non-negative")
    if min_trace_budget < 0:
        raise ValueError("min_trace_budget must be non-negative")
    if reserved_slots < HEARTBEAT_SLOTS:
        raise ValueError("reserved_slots must include the heartbeat slot")

    budget = max(0, write_budget - reserved_slots)
    high_priority_budget = _clamp(high_priority_count, 0, budget - min_trace_budget)
    raw_trace_budget = max(0, budget - high_priority_budget)
    trace_budget = raw_trace_budget - (raw_trace_budget % 2)

    if budget <= min_trace_budget and high_priority_count > 0:
        logger.warning(
            "Write budget %d is below the trace floor %d; high-priority entries get no slots",
            write_budget,
            min_trace_budget,
            extra={
                "write_budget": write_budget,
                "min_trace_budget": min_trace_budget,
                "reserved_slots": reserved_slots,
                "high_priority_count": high_priority_count,
            },
        )

    return BudgetAllocation(
        high_priority_budget=high_priority_budget, trace_budget=trace_budget
    )


def _clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(value, maximum))
