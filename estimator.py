"""
Chain clock estimator: calendar date -> block height.

The estimate is a linear extrapolation from a pinned (block, timestamp)
reference. The target is pushed to noon UTC of the day after the requested
date so that drift and timezone ambiguity always land on a later block,
never an earlier one. A stale reference biases every estimate linearly, so
refresh a live reference before estimates that matter.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union

from chain.context import ChainContext, ChainReference
from errors import StaleOrPastUnlockDate, UnsupportedChain

logger = logging.getLogger(__name__)

_NOON = time(12, 0)

DateLike = Union[date, datetime, str]


@dataclass(frozen=True)
class UnlockTarget:
    calendar_date: date
    resolved_block: Optional[int] = None


def parse_unlock_date(value: DateLike) -> Optional[date]:
    """Accept a date, a datetime (taken in UTC) or a 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def normalize_target(target_date: date) -> datetime:
    return datetime.combine(target_date + timedelta(days=1), _NOON, tzinfo=timezone.utc)


def _round_nearest(value: float) -> int:
    # Halves round up, as on the chain explorers' calculators.
    return math.floor(value + 0.5)


def estimate_block(
    target_date: DateLike,
    reference: ChainReference,
    now: Optional[datetime] = None,
) -> Optional[int]:
    """Estimated block for `target_date`, or None if the date is not in the future."""
    parsed = parse_unlock_date(target_date)
    if parsed is None:
        return None
    current = now or datetime.now(timezone.utc)

    day_start = datetime.combine(parsed, time(0, 0), tzinfo=timezone.utc)
    if day_start <= current:
        return None
    target = normalize_target(parsed)
    if target <= current:
        return None

    elapsed = (target - reference.timestamp).total_seconds()
    return reference.block_height + _round_nearest(elapsed / reference.block_interval_seconds)


def reference_for(context: ChainContext) -> ChainReference:
    if context.reference is None:
        raise UnsupportedChain(context.address_prefix)
    return context.reference


def resolve_unlock_target(
    target_date: DateLike,
    context: ChainContext,
    now: Optional[datetime] = None,
) -> UnlockTarget:
    """Resolve a date against the chain's reference or raise."""
    reference = reference_for(context)
    parsed = parse_unlock_date(target_date)
    if parsed is None:
        raise StaleOrPastUnlockDate(f"Unlock date {target_date!r} is not a valid date")
    block = estimate_block(parsed, reference, now=now)
    if block is None:
        raise StaleOrPastUnlockDate(f"Unlock date {parsed.isoformat()} is not in the future")
    logger.debug("Unlock date %s resolved to block %s", parsed.isoformat(), block)
    return UnlockTarget(calendar_date=parsed, resolved_block=block)
