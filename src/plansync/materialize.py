"""Convert plan wall-clock blocks into absolute UTC instants.

Plans carry ``HH:MM`` times with no zone.  The only zone information a caller
supplies is a numeric offset in the browser convention
(``Date.prototype.getTimezoneOffset``): minutes that must be *added* to local
time to reach UTC, so a zone ahead of UTC has a negative offset
(UTC+10 -> ``-600``).

The block time is first read as if it were UTC, then shifted by the offset.
A numeric offset cannot express daylight-saving transitions, so every block
in a plan is shifted by the same amount.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import UTC, date, datetime, time, timedelta

from plansync.models import TimeBlock, parse_wall_clock


def wall_clock_to_utc(plan_date: date, wall_clock: str, timezone_offset_minutes: int) -> datetime:
    """Return the aware UTC instant for ``wall_clock`` on ``plan_date``."""
    hour, minute = parse_wall_clock(wall_clock)
    naive_utc = datetime.combine(plan_date, time(hour, minute), tzinfo=UTC)
    return naive_utc + timedelta(minutes=timezone_offset_minutes)


def materialize(
    plan_date: date,
    block: TimeBlock,
    timezone_offset_minutes: int = 0,
) -> tuple[datetime, datetime]:
    """Return ``(start, end)`` UTC instants for ``block`` on ``plan_date``."""
    start = wall_clock_to_utc(plan_date, block.start_time, timezone_offset_minutes)
    end = wall_clock_to_utc(plan_date, block.end_time, timezone_offset_minutes)
    return start, end


def actionable_blocks(blocks: Iterable[TimeBlock]) -> Iterator[TimeBlock]:
    """Yield blocks eligible for sync, preserving plan order."""
    for block in blocks:
        if block.is_actionable:
            yield block
