"""Tests for the booking workflow state machine and owner operations."""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from salonbook.booking import (BookingRequest, BookingState, BookingWorkflow,
                               parse_price, resolve_price, split_service)
from salonbook.errors import (InputValidationError, NotFoundError,
                              PermissionDeniedError, RemoteValidationError,
                              SlotTaken)

SATURDAY = date(2024, 6, 1)


def _request(salon, client_profile=None, slot="10:00", service="Coupe - Femme", **overrides):
    payload = {
        "service": service,
        "date": "2024-06-01",
        "time": slot,
        "first_name": "Alice",
        "last_name": "Martin",
        "phone": "0600000000",
    }
    payload.update(overrides)
    return BookingRequest.from_payload(
        salon.salon_id,
        payload,
        client_id=client_profile.profile_id if client_profile else None,
        client_email=client_profile.email if client_profile else None,
    )


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def workflow(app, gateway, notifier):
    return BookingWorkflow(gateway, app.extensions["availability"], notifier)


def test_split_service():
    assert split_service("Coupe - Femme") == ("Coupe", "Femme")
    with pytest.raises(InputValidationError):
        split_service("Coupe")


@pytest.mark.parametrize("raw, expected", [
    (25, Decimal("25.00")),
    ("25 €", Decimal("25.00")),
    ("12,50", Decimal("12.50")),
    ("0 €", Decimal("0.00")),
])
def test_parse_price(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw", [None, True, "free", "-5"])
def test_parse_price_rejects(raw):
    with pytest.raises(InputValidationError):
        parse_price(raw)


def test_resolve_price_unknown_service():
    with pytest.raises(InputValidationError):
        resolve_price({"Coupe": {"Femme": {"price": 25}}}, "Coupe", "Homme")


def test_book_walks_every_state(workflow, salon, client_profile, notifier):
    attempt = workflow.book(_request(salon, client_profile))

    assert attempt.state is BookingState.CONFIRMED
    assert attempt.history == [BookingState.DRAFT, BookingState.VALIDATED,
                               BookingState.SUBMITTED, BookingState.CONFIRMED]
    assert attempt.reservation.time == time(10, 0)
    assert attempt.reservation.price == Decimal("25.00")
    assert attempt.reservation.service == "Coupe - Femme"
    assert attempt.reservation.full_name == "Alice Martin"
    notifier.booking_confirmed.assert_called_once_with(attempt.reservation, "alice@example.com")


def test_category_and_service_name_fields(workflow, salon, client_profile):
    attempt = workflow.book(_request(salon, client_profile, service=None,
                                     category="Coupe", service_name="Homme"))
    assert attempt.reservation.price == Decimal("18.00")


@pytest.mark.parametrize("field", ["first_name", "last_name", "phone", "time", "date"])
def test_missing_field_fails_before_any_write(workflow, gateway, salon, field):
    with pytest.raises(InputValidationError) as excinfo:
        workflow.validate(_request(salon, **{field: ""}))

    assert gateway.query("reservations") == []
    assert excinfo.value.details["missing"]


def test_slot_outside_opening_hours(workflow, salon):
    with pytest.raises(InputValidationError):
        workflow.validate(_request(salon, slot="14:00"))


def test_closed_day_has_no_bookable_slot(workflow, salon):
    with pytest.raises(InputValidationError):
        workflow.validate(_request(salon, date="2024-06-02", slot="09:00"))


def test_unknown_service(workflow, salon):
    with pytest.raises(InputValidationError):
        workflow.validate(_request(salon, service="Coupe - Enfant"))


def test_unknown_salon(workflow):
    with pytest.raises(NotFoundError):
        workflow.validate(_request(SimpleNamespace(salon_id=404)))


def test_unverified_salon_cannot_be_booked(workflow, gateway, make_salon, client_profile):
    pending = make_salon("En attente", verified=False)

    with pytest.raises(PermissionDeniedError):
        workflow.validate(_request(pending, client_profile))
    assert gateway.query("reservations") == []


def test_taken_slot_is_rejected_at_submission(workflow, salon, client_profile, make_profile, notifier):
    workflow.book(_request(salon, client_profile))
    notifier.reset_mock()

    other = make_profile("client", email="bob@example.com")
    attempt = workflow.book(_request(salon, other))

    assert attempt.state is BookingState.REJECTED
    assert attempt.reason == "SlotTaken"
    assert attempt.reservation is None
    notifier.booking_confirmed.assert_not_called()


def test_concurrent_bookings_only_one_succeeds(workflow, gateway, salon, client_profile, make_profile):
    """Both attempts pass the re-check; the slot constraint stops the second insert."""
    other = make_profile("client", email="bob@example.com")
    first = workflow.submit(workflow.validate(_request(salon, client_profile)))
    second = workflow.submit(workflow.validate(_request(salon, other)))
    assert first.state is second.state is BookingState.SUBMITTED

    results = [workflow.confirm(first), workflow.confirm(second)]

    assert [attempt.state for attempt in results] == [BookingState.CONFIRMED, BookingState.REJECTED]
    assert results[1].reason == "SlotTaken"
    assert len(gateway.query("reservations", {"salon_id": salon.salon_id})) == 1


def test_store_rejection_on_free_slot_is_not_reported_as_taken(enforced_foreign_keys, workflow, gateway, salon):
    """A foreign key failure must surface as itself, not as a lost slot."""
    ghost = SimpleNamespace(profile_id="no-such-profile", email=None)
    attempt = workflow.submit(workflow.validate(_request(salon, ghost)))

    with pytest.raises(RemoteValidationError) as excinfo:
        workflow.confirm(attempt)

    assert not isinstance(excinfo.value, SlotTaken)
    assert attempt.state is BookingState.SUBMITTED
    assert gateway.query("reservations") == []


def test_price_snapshot_survives_price_change(workflow, gateway, salon, client_profile):
    attempt = workflow.book(_request(salon, client_profile, service="Couleur - Balayage"))
    assert attempt.reservation.price == Decimal("30.00")

    pricing = {"Couleur": {"Balayage": {"price": 40}}}
    gateway.update("salons", salon.salon_id, {"pricing": pricing})

    stored = gateway.get("reservations", attempt.reservation.reservation_id)
    assert stored.price == Decimal("30.00")


def test_notification_failure_keeps_reservation(workflow, gateway, salon, client_profile, notifier):
    notifier.booking_confirmed.side_effect = RuntimeError("queue down")

    attempt = workflow.book(_request(salon, client_profile))

    assert attempt.state is BookingState.CONFIRMED
    assert gateway.get("reservations", attempt.reservation.reservation_id) is not None


def test_confirm_requires_submitted_attempt(workflow, salon):
    attempt = workflow.validate(_request(salon))
    with pytest.raises(ValueError):
        workflow.confirm(attempt)


def test_cancel_permissions(workflow, gateway, salon, client_profile, owner, make_profile):
    first = workflow.book(_request(salon, client_profile, slot="09:00")).reservation
    second = workflow.book(_request(salon, client_profile, slot="09:30")).reservation
    stranger = make_profile("client", email="eve@example.com")

    with pytest.raises(PermissionDeniedError):
        workflow.cancel(first.reservation_id, stranger.profile_id)
    with pytest.raises(PermissionDeniedError):
        workflow.cancel(first.reservation_id, None)

    workflow.cancel(first.reservation_id, client_profile.profile_id)
    workflow.cancel(second.reservation_id, owner.profile_id)
    assert gateway.query("reservations") == []


def test_walk_in_accepts_any_time(workflow, salon, owner):
    reservation = workflow.add_walk_in(salon.salon_id, owner.profile_id, {
        "date": "2024-06-01",
        "time": "18:15",
        "service": "Coupe - Homme",
        "full_name": "Paul Durand",
        "phone": "0611111111",
    })

    assert reservation.client_id is None
    assert reservation.time == time(18, 15)
    assert reservation.price == Decimal("18.00")


def test_walk_in_on_taken_slot(workflow, salon, owner, client_profile):
    workflow.book(_request(salon, client_profile, slot="09:00"))
    with pytest.raises(SlotTaken):
        workflow.add_walk_in(salon.salon_id, owner.profile_id, {
            "date": "2024-06-01",
            "time": "09:00",
            "service": "Coupe - Homme",
            "full_name": "Paul Durand",
            "phone": "0611111111",
        })


def test_walk_in_store_rejection_on_free_slot_propagates(workflow, gateway, salon, owner, monkeypatch):
    def rejecting_insert(entity, row):
        raise RemoteValidationError(f"insert into {entity} rejected by the store")

    monkeypatch.setattr(gateway, "insert", rejecting_insert)
    with pytest.raises(RemoteValidationError) as excinfo:
        workflow.add_walk_in(salon.salon_id, owner.profile_id, {
            "date": "2024-06-01",
            "time": "09:00",
            "service": "Coupe - Homme",
            "full_name": "Paul Durand",
            "phone": "0611111111",
        })

    assert not isinstance(excinfo.value, SlotTaken)


def test_walk_in_requires_owner(workflow, salon, client_profile):
    with pytest.raises(PermissionDeniedError):
        workflow.add_walk_in(salon.salon_id, client_profile.profile_id, {})


def test_reschedule(workflow, salon, owner, client_profile):
    reservation = workflow.book(_request(salon, client_profile, slot="09:00")).reservation

    moved = workflow.reschedule(reservation.reservation_id, owner.profile_id,
                                {"time": "10:00", "service": "Coupe - Homme"})

    assert moved.time == time(10, 0)
    assert moved.price == Decimal("18.00")


def test_reschedule_onto_taken_slot(workflow, salon, owner, client_profile):
    workflow.book(_request(salon, client_profile, slot="09:00"))
    other = workflow.book(_request(salon, client_profile, slot="09:30")).reservation

    with pytest.raises(SlotTaken):
        workflow.reschedule(other.reservation_id, owner.profile_id, {"time": "09:00"})


def test_list_for_salon_and_revenue(workflow, salon, owner, client_profile):
    workflow.book(_request(salon, client_profile, slot="10:00"))
    workflow.book(_request(salon, client_profile, slot="09:00", service="Couleur - Balayage"))
    workflow.add_walk_in(salon.salon_id, owner.profile_id, {
        "date": "2024-06-20", "time": "11:00", "service": "Coupe - Homme",
        "full_name": "Paul Durand", "phone": "0611111111",
    })

    rows = workflow.list_for_salon(salon.salon_id, owner.profile_id, "2024-06-01", "2024-06-07")
    assert [row.time for row in rows] == [time(9, 0), time(10, 0)]

    summary = workflow.revenue(salon.salon_id, owner.profile_id, "2024-06-01", "2024-06-30")
    assert summary == {
        "salon_id": salon.salon_id,
        "reservations": 3,
        "total": 73.0,
        "from": "2024-06-01",
        "to": "2024-06-30",
    }


def test_list_for_client_splits_past_and_upcoming(app, gateway, salon, client_profile):
    workflow = BookingWorkflow(gateway, app.extensions["availability"],
                               now=lambda: datetime(2024, 6, 1, 9, 45))
    workflow.book(_request(salon, client_profile, slot="09:00"))
    workflow.book(_request(salon, client_profile, slot="10:00"))

    split = workflow.list_for_client(client_profile.profile_id)

    assert [row.time for row in split["past"]] == [time(9, 0)]
    assert [row.time for row in split["upcoming"]] == [time(10, 0)]
