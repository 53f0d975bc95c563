from datetime import date, datetime, timezone

from apps.checkout.cards import format_card_number, format_cvv, format_expiry, normalize_card
from apps.checkout.delivery import (
    DELIVERY_TIME_SLOTS,
    available_delivery_dates,
    available_delivery_times,
    check_delivery_choice,
    default_delivery_date,
    default_delivery_time,
)


def test_card_number_grouped_and_truncated():
    assert format_card_number("4242-4242 4242x4242 99") == "4242 4242 4242 4242"
    assert format_card_number("12345") == "1234 5"


def test_expiry_and_cvv():
    assert format_expiry("1") == "1"
    assert format_expiry("12") == "12"
    assert format_expiry("1230") == "12/30"
    assert format_expiry("12/305") == "12/30"
    assert format_cvv("12a345") == "1234"


def test_normalize_card_masks_last_four():
    card = normalize_card(card_number="4111111111111234", card_name="  Sam ", expiry_date="0129", cvv="999")
    assert card.card_name == "Sam"
    assert card.expiry_date == "01/29"
    assert card.masked() == "**** 1234"


def test_delivery_dates_are_weekdays_two_to_fourteen_days_out():
    # Wednesday
    today = date(2025, 1, 29)
    dates = available_delivery_dates(today)
    assert dates[0] == "2025-01-31"
    # crosses the month boundary
    assert "2025-02-03" in dates
    assert "2025-02-01" not in dates and "2025-02-02" not in dates
    assert dates[-1] == "2025-02-12"
    assert all(date.fromisoformat(d).weekday() < 5 for d in dates)


def test_same_day_slots_start_after_current_hour():
    now = datetime(2025, 1, 29, 13, 30, tzinfo=timezone.utc)
    assert available_delivery_times("2025-01-29", now) == ["15:00-18:00", "18:00-21:00"]
    assert available_delivery_times("2025-01-31", now) == list(DELIVERY_TIME_SLOTS)


def test_defaults():
    assert default_delivery_date(date(2025, 1, 29)) == "2025-01-31"
    assert default_delivery_time() == "09:00-12:00"


def test_check_delivery_choice():
    now = datetime(2025, 1, 29, 8, 0, tzinfo=timezone.utc)
    assert check_delivery_choice("2025-01-31", "09:00-12:00", now) is None
    assert check_delivery_choice("2025-02-01", "09:00-12:00", now) == "Please select a delivery date"
    assert check_delivery_choice("2025-01-31", "21:00-23:00", now) == "Please select a delivery time"
