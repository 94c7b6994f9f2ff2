"""Expansion of monthly recurring allowances into dated occurrences.

Occurrences are never stored. Each one is derived from the event's anchor
date and identified by ``"{event_id}:{iso_date}"``, so the same event and
window always produce the same ids in the same order.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from typing import Any

from payroll_core.calculators.money import ZERO, to_decimal
from payroll_core.calculators.types import AllowanceOccurrence, EventType

MAX_OCCURRENCES = 600

DateLike = date | datetime | str | None


def normalize_date(value: DateLike) -> date | None:
    """Reduce a date-like value to a calendar day, or None if unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def add_months(value: date, months: int, anchor_day: int) -> date:
    """Move ``months`` calendar months from ``value``, clamping the day."""
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(anchor_day, 1), last_day))


def is_recurring_monthly_allowance(event: Any) -> bool:
    return (
        EventType.parse(getattr(event, "event_type", None)) is EventType.ALLOWANCE
        and str(getattr(event, "recurrence_type", "none") or "none").lower() == "monthly"
    )


def occurrence_id(event: Any, occurrence_date: date) -> str:
    raw_id = getattr(event, "event_id", None)
    base = str(raw_id).strip() if raw_id is not None else ""
    if not base:
        base = str(getattr(event, "event_type", "event"))
    return f"{base}:{occurrence_date.isoformat()}"


def _build(event: Any, occurrence_date: date, recurring: bool) -> AllowanceOccurrence:
    amount = to_decimal(getattr(event, "amount", None))
    return AllowanceOccurrence(
        occurrence_id=occurrence_id(event, occurrence_date),
        event_id=str(getattr(event, "event_id", "") or ""),
        event_type=str(getattr(event, "event_type", "")),
        occurrence_date=occurrence_date,
        amount=amount if amount is not None else ZERO,
        title=str(getattr(event, "title", "") or ""),
        recurring=recurring,
    )


def effective_window(
    event: Any,
    range_start: DateLike = None,
    range_end: DateLike = None,
    today: date | None = None,
) -> tuple[date, date] | None:
    """Return the [start, end] window occurrences may fall in, or None."""
    anchor = normalize_date(getattr(event, "event_date", None))
    if anchor is None:
        return None

    recurrence_end = normalize_date(getattr(event, "recurrence_end_date", None))
    if recurrence_end is not None and recurrence_end < anchor:
        # Inverted end dates are treated as open-ended
        recurrence_end = None

    start = normalize_date(range_start)
    effective_start = max(start, anchor) if start is not None else anchor

    upper = normalize_date(range_end) or today or date.today()
    effective_end = min(upper, recurrence_end) if recurrence_end is not None else upper

    if effective_end < effective_start:
        return None
    return effective_start, effective_end


def expand_occurrences(
    event: Any,
    range_start: DateLike = None,
    range_end: DateLike = None,
    today: date | None = None,
) -> list[AllowanceOccurrence]:
    """Expand an event into its dated occurrences inside a window.

    Non-recurring events (and every non-allowance type) yield exactly one
    occurrence at their anchor date. Monthly allowances yield one occurrence
    per calendar month inside ``[max(range_start, anchor),
    min(range_end or today, recurrence_end_date)]``, at most
    ``MAX_OCCURRENCES``.
    """
    anchor = normalize_date(getattr(event, "event_date", None))
    if anchor is None:
        return []

    if not is_recurring_monthly_allowance(event):
        return [_build(event, anchor, recurring=False)]

    window = effective_window(event, range_start, range_end, today)
    if window is None:
        return []
    effective_start, effective_end = window

    anchor_day = anchor.day
    offset = (effective_start.year - anchor.year) * 12 + (effective_start.month - anchor.month)
    occurrence = add_months(anchor, offset, anchor_day)
    if occurrence < effective_start:
        offset += 1
        occurrence = add_months(anchor, offset, anchor_day)

    results: list[AllowanceOccurrence] = []
    while occurrence <= effective_end and len(results) < MAX_OCCURRENCES:
        results.append(_build(event, occurrence, recurring=True))
        offset += 1
        occurrence = add_months(anchor, offset, anchor_day)

    return results


def allowance_recurs_in_range(event: Any, range_start: DateLike, range_end: DateLike) -> bool:
    """Cheap check whether a recurring allowance can touch a range at all."""
    if not is_recurring_monthly_allowance(event):
        return False
    start = normalize_date(range_start)
    end = normalize_date(range_end)
    anchor = normalize_date(getattr(event, "event_date", None))
    if start is None or end is None or anchor is None:
        return False
    if anchor > end:
        return False
    recurrence_end = normalize_date(getattr(event, "recurrence_end_date", None))
    if recurrence_end is not None and recurrence_end >= anchor and recurrence_end < start:
        return False
    return True
