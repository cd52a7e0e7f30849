"""
Month Keys and Boundaries

Snapshots are keyed "YYYY-MM". Every month-range request is compiled into an
explicit month list here before any replay happens.

DESIGN DECISION: Month boundaries are computed in a configured timezone
(UTC by default) and then expressed as UTC instants. The cutoff of a month
is the last microsecond before the next month begins, so a transaction at
23:59:59.999 on the last day is still inside the month.
"""

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from wealth_ledger.models.ledger import as_utc


MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

ONE_MICROSECOND = timedelta(microseconds=1)


class InvalidMonthError(ValueError):
    """Raised for a malformed month key or an inverted month range."""
    pass


def parse_month(month: str) -> tuple[int, int]:
    """Parse "YYYY-MM" into (year, month)."""
    match = MONTH_PATTERN.match(month.strip()) if isinstance(month, str) else None
    if not match:
        raise InvalidMonthError(f"Month must be formatted YYYY-MM, got {month!r}")

    year, number = int(match.group(1)), int(match.group(2))
    if not 1 <= number <= 12:
        raise InvalidMonthError(f"Month number out of range in {month!r}")
    if year < 1:
        raise InvalidMonthError(f"Year out of range in {month!r}")
    return year, number


def month_id(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def shift_month(month: str, count: int) -> str:
    """Month key `count` months after (or before, when negative) `month`."""
    year, number = parse_month(month)
    index = year * 12 + (number - 1) + count
    return month_id(index // 12, index % 12 + 1)


def _next_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def month_bounds(month: str, tz: Optional[tzinfo] = None) -> tuple[datetime, datetime]:
    """
    First and last instant of a month, as aware UTC datetimes.

    Args:
        month: "YYYY-MM"
        tz: Timezone the month is calendared in (default UTC)

    Returns:
        (start, end) with end being one microsecond before the next month
    """
    tz = tz or timezone.utc
    year, number = parse_month(month)
    next_year, next_number = _next_month(year, number)

    try:
        start = datetime(year, number, 1, tzinfo=tz).astimezone(timezone.utc)
        next_start = datetime(next_year, next_number, 1, tzinfo=tz).astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        raise InvalidMonthError(f"Month {month!r} is outside the supported calendar") from e
    return start, next_start - ONE_MICROSECOND


def month_end(month: str, tz: Optional[tzinfo] = None) -> datetime:
    """The replay cutoff of a month."""
    return month_bounds(month, tz)[1]


def month_of(moment: datetime, tz: Optional[tzinfo] = None) -> str:
    """Month key containing a given instant."""
    local = as_utc(moment).astimezone(tz or timezone.utc)
    return month_id(local.year, local.month)


def expand_month_range(start: str, end: str) -> list[str]:
    """
    Expand an inclusive month range into an explicit list.

    >>> expand_month_range("2023-11", "2024-02")
    ['2023-11', '2023-12', '2024-01', '2024-02']
    """
    year, number = parse_month(start)
    end_year, end_number = parse_month(end)

    if (year, number) > (end_year, end_number):
        raise InvalidMonthError(f"Range start {start} is after range end {end}")

    months = []
    while (year, number) <= (end_year, end_number):
        months.append(month_id(year, number))
        year, number = _next_month(year, number)
    return months


def resolve_months(
    month: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> list[str]:
    """
    Compile the automation surface (one month or an inclusive range) into
    an explicit month list.
    """
    if month is not None:
        if start is not None or end is not None:
            raise InvalidMonthError("Give either a single month or a range, not both")
        parse_month(month)
        return [month.strip()]

    if start is None or end is None:
        raise InvalidMonthError("A month range needs both start and end")

    return expand_month_range(start, end)


def normalize_months(months: list[str]) -> list[str]:
    """Validate month keys and drop duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for month in months:
        year, number = parse_month(month)
        key = month_id(year, number)
        if key not in seen:
            seen.add(key)
            result.append(key)
    return result
