"""Log records and the validation boundary for data read from either store.

Everything loaded from the local or remote store passes through
:func:`validate_records` before it reaches observers. Malformed entries are
dropped rather than reported.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogRecord:
    """One logged resistance event."""

    id: str
    duration_ms: int
    occurred_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored document shape."""
        return {
            "id": self.id,
            "duration": self.duration_ms,
            "date": format_timestamp(self.occurred_at),
        }


def format_timestamp(value: datetime) -> str:
    """Serialize a timestamp as ISO-8601 UTC with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp.

    Accepts datetimes, ISO-8601 strings and epoch milliseconds. Naive values
    are taken as UTC.

    Returns:
        Timezone-aware datetime, or None if the value is not a valid date.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def coerce_duration(value: Any) -> int:
    """Coerce a stored duration to a non-negative integer of milliseconds."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 0
    if not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return max(int(value), 0)


def validate_record(raw: Any) -> LogRecord | None:
    """Validate one loosely-typed stored item.

    Args:
        raw: Item as read from a store, expected to be a mapping with
            ``id``, ``duration`` and ``date`` keys.

    Returns:
        A LogRecord, or None when the item has no usable date.
    """
    if not isinstance(raw, Mapping):
        return None

    occurred_at = parse_timestamp(raw.get("date"))
    if occurred_at is None:
        return None

    record_id = raw.get("id")
    if record_id is None or record_id == "":
        # Local entries were historically keyed by creation time
        record_id = str(round(occurred_at.timestamp() * 1000))

    return LogRecord(
        id=str(record_id),
        duration_ms=coerce_duration(raw.get("duration")),
        occurred_at=occurred_at,
    )


def sort_records(records: list[LogRecord]) -> list[LogRecord]:
    """Sort records newest first."""
    return sorted(records, key=lambda r: (r.occurred_at, r.id), reverse=True)


def validate_records(items: Any) -> list[LogRecord]:
    """Validate, de-duplicate and sort a stored collection.

    Returns:
        Records ordered by ``occurred_at`` descending, unique by id.
    """
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
        return []

    valid = []
    dropped = 0
    for item in items:
        record = validate_record(item)
        if record is None:
            dropped += 1
        else:
            valid.append(record)

    seen: set[str] = set()
    records = []
    for record in sort_records(valid):
        if record.id in seen:
            dropped += 1
            continue
        seen.add(record.id)
        records.append(record)

    if dropped:
        logger.debug(f"Dropped {dropped} invalid or duplicate records")
    return records


@dataclass(frozen=True)
class DayTotal:
    """Sessions logged on one calendar day."""

    day: date
    count: int
    total_ms: int


@dataclass(frozen=True)
class RecordStats:
    """Aggregate figures over a record list."""

    count: int = 0
    total_ms: int = 0
    average_ms: float = 0.0
    longest_ms: int = 0
    by_day: list[DayTotal] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_ms": self.total_ms,
            "average_ms": self.average_ms,
            "longest_ms": self.longest_ms,
            "by_day": [
                {"day": d.day.isoformat(), "count": d.count, "total_ms": d.total_ms}
                for d in self.by_day
            ],
        }


def summarize(records: list[LogRecord], tz: tzinfo | None = None) -> RecordStats:
    """Compute totals, average, longest hold and per-day totals.

    Zero-length records count towards the session total. Days are grouped in
    ``tz`` (UTC by default) and listed newest first.
    """
    if not records:
        return RecordStats()

    tz = tz or timezone.utc
    total = sum(r.duration_ms for r in records)

    days: dict[date, tuple[int, int]] = {}
    for record in records:
        day = record.occurred_at.astimezone(tz).date()
        count, day_total = days.get(day, (0, 0))
        days[day] = (count + 1, day_total + record.duration_ms)

    return RecordStats(
        count=len(records),
        total_ms=total,
        average_ms=total / len(records),
        longest_ms=max(r.duration_ms for r in records),
        by_day=[
            DayTotal(day=day, count=count, total_ms=day_total)
            for day, (count, day_total) in sorted(days.items(), reverse=True)
        ],
    )
