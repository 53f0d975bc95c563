"""Delivery slot options offered at checkout."""

from datetime import date, datetime, timedelta
from typing import List, Optional

DELIVERY_TIME_SLOTS = ("09:00-12:00", "12:00-15:00", "15:00-18:00", "18:00-21:00")

# Orders need at least one full day of processing
FIRST_DELIVERY_OFFSET_DAYS = 2
LAST_DELIVERY_OFFSET_DAYS = 14


def available_delivery_dates(today: date) -> List[str]:
    """Weekdays from two days after ``today`` through two weeks out, as ISO dates."""
    dates = []
    for offset in range(FIRST_DELIVERY_OFFSET_DAYS, LAST_DELIVERY_OFFSET_DAYS + 1):
        day = today + timedelta(days=offset)
        if day.weekday() < 5:
            dates.append(day.isoformat())
    return dates


def available_delivery_times(delivery_date: str, now: datetime) -> List[str]:
    """Time slots for ``delivery_date``; same-day slots must start after the current hour."""
    if delivery_date == now.date().isoformat():
        return [slot for slot in DELIVERY_TIME_SLOTS if int(slot.split(":")[0]) > now.hour]
    return list(DELIVERY_TIME_SLOTS)


def default_delivery_date(today: date) -> str:
    return (today + timedelta(days=FIRST_DELIVERY_OFFSET_DAYS)).isoformat()


def default_delivery_time() -> str:
    return DELIVERY_TIME_SLOTS[0]


def check_delivery_choice(delivery_date: str, delivery_time: str, now: datetime) -> Optional[str]:
    """Return the message for an unavailable date/slot, or None when it is offered."""
    if delivery_date not in available_delivery_dates(now.date()):
        return "Please select a delivery date"
    if delivery_time not in available_delivery_times(delivery_date, now):
        return "Please select a delivery time"
    return None
