"""Tests for slot templates and free-slot computation."""
from __future__ import annotations

from datetime import date, time

import pytest

from salonbook.availability import (DEFAULT_TEMPLATE, AvailabilityEngine,
                                    slots_between, template_for_day)
from salonbook.errors import InputValidationError, NotFoundError

SATURDAY = date(2024, 6, 1)
SUNDAY = date(2024, 6, 2)
MONDAY = date(2024, 6, 3)


def _book(gateway, salon, day, slot):
    gateway.insert("reservations", {
        "salon_id": salon.salon_id,
        "date": day,
        "time": slot,
        "service": "Coupe - Femme",
        "price": 25,
        "full_name": "Alice Martin",
        "phone": "0600000000",
    })


def test_slots_between_excludes_slot_overrunning_end():
    assert slots_between("09:00", "10:30", 30) == ["09:00", "09:30", "10:00"]
    assert slots_between("14:00", "15:15", 30) == ["14:00", "14:30"]


def test_template_merges_morning_and_afternoon():
    hours = {
        "Lundi": {
            "isOpen": True,
            "morning": {"start": "09:00", "end": "10:00"},
            "afternoon": {"start": "14:00", "end": "15:00"},
        }
    }
    assert template_for_day(hours, MONDAY) == ["09:00", "09:30", "14:00", "14:30"]


@pytest.mark.parametrize("hours", [
    {"dimanche": "closed"},
    {"dimanche": {"isOpen": False, "morning": {"start": "09:00", "end": "12:00"}}},
    {"lundi": {"isOpen": True, "morning": {"start": "09:00", "end": "12:00"}}},
])
def test_closed_or_unconfigured_day_has_no_slots(hours):
    assert template_for_day(hours, SUNDAY) == []


def test_salon_without_hours_uses_default_template():
    assert template_for_day({}, MONDAY) == list(DEFAULT_TEMPLATE)
    assert template_for_day(None, MONDAY) == list(DEFAULT_TEMPLATE)


def test_english_day_names_are_accepted():
    hours = {"Saturday": {"morning": {"start": "10:00", "end": "11:00"}}}
    assert template_for_day(hours, SATURDAY) == ["10:00", "10:30"]


def test_empty_day_returns_full_template_in_order(app, salon):
    engine = app.extensions["availability"]
    assert engine.free_slots(salon.salon_id, SATURDAY) == ["09:00", "09:30", "10:00"]


def test_reserved_slots_are_removed(app, gateway, salon):
    _book(gateway, salon, SATURDAY, time(9, 30))
    engine = app.extensions["availability"]

    first = engine.free_slots(salon.salon_id, "2024-06-01")
    second = engine.free_slots(salon.salon_id, "2024-06-01")

    assert first == ["09:00", "10:00"]
    assert first == second
    assert engine.is_free(salon.salon_id, SATURDAY, "09:00")
    assert not engine.is_free(salon.salon_id, SATURDAY, "09:30")


def test_reservations_of_other_dates_do_not_interfere(app, gateway, salon):
    _book(gateway, salon, date(2024, 6, 8), time(9, 0))
    engine = app.extensions["availability"]
    assert engine.free_slots(salon.salon_id, SATURDAY) == ["09:00", "09:30", "10:00"]


def test_week_availability(app, gateway, salon):
    _book(gateway, salon, SATURDAY, time(9, 0))
    engine = app.extensions["availability"]

    week = engine.week_availability(salon.salon_id, SATURDAY)

    assert list(week) == ["2024-06-01", "2024-06-02", "2024-06-03", "2024-06-04",
                          "2024-06-05", "2024-06-06", "2024-06-07"]
    assert week["2024-06-01"] == ["09:30", "10:00"]
    assert week["2024-06-02"] == []


def test_past_dates_allowed_by_default(gateway, salon):
    engine = AvailabilityEngine(gateway, clock=lambda: date(2030, 1, 1))
    assert engine.free_slots(salon.salon_id, SATURDAY) == ["09:00", "09:30", "10:00"]


def test_past_dates_rejected_when_policy_enabled(gateway, salon):
    engine = AvailabilityEngine(gateway, reject_past_dates=True, clock=lambda: date(2030, 1, 1))
    with pytest.raises(InputValidationError):
        engine.free_slots(salon.salon_id, SATURDAY)


def test_week_availability_leaves_past_days_empty_when_policy_enabled(gateway, make_salon):
    open_daily = make_salon("Ouvert tous les jours", operating_hours={})
    engine = AvailabilityEngine(gateway, reject_past_dates=True, clock=lambda: MONDAY)

    week = engine.week_availability(open_daily.salon_id, SATURDAY)

    assert week["2024-06-01"] == []
    assert week["2024-06-02"] == []
    assert week["2024-06-03"] == list(DEFAULT_TEMPLATE)
    assert week["2024-06-07"] == list(DEFAULT_TEMPLATE)


def test_unknown_salon(app):
    with pytest.raises(NotFoundError):
        app.extensions["availability"].free_slots(404, SATURDAY)


def test_invalid_date(app, salon):
    with pytest.raises(InputValidationError):
        app.extensions["availability"].free_slots(salon.salon_id, "01/06/2024")


def test_availability_endpoint(client, salon):
    response = client.get(f"/salons/{salon.salon_id}/availability?date=2024-06-01")

    assert response.status_code == 200
    assert response.get_json()["available_slots"] == ["09:00", "09:30", "10:00"]


def test_availability_endpoint_requires_date(client, salon):
    response = client.get(f"/salons/{salon.salon_id}/availability")
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
