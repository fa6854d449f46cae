"""Booking workflow.

Each attempt moves ``DRAFT -> VALIDATED -> SUBMITTED -> CONFIRMED`` or ends
in ``REJECTED``. The availability re-check before the insert is only a
pre-flight: the ``uq_reservation_slot`` constraint on the reservations table
is what actually prevents a double booking, and the workflow turns its
violation into a ``SlotTaken`` rejection.

The price of the chosen service is copied onto the reservation when it is
created, so later edits of the salon's price list never change it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Mapping

from .availability import AvailabilityEngine, format_slot, parse_date, parse_slot
from .errors import (InputValidationError, NotFoundError, PermissionDeniedError,
                     RemoteValidationError, SlotTaken)
from .gateway import StoreGateway

logger = logging.getLogger(__name__)

SERVICE_SEPARATOR = " - "
CENTS = Decimal("0.01")


class BookingState(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


def split_service(label: str) -> tuple[str, str]:
    """``"Coupe - Femme"`` -> ``("Coupe", "Femme")``."""
    category, sep, service_name = (label or "").partition(SERVICE_SEPARATOR)
    if not sep or not category.strip() or not service_name.strip():
        raise InputValidationError("service must be formatted as 'category - service'")
    return category.strip(), service_name.strip()


def parse_price(raw: Any) -> Decimal:
    """Accept ``25``, ``25.5``, ``"25 €"`` or ``"12,50"``."""
    if isinstance(raw, bool) or raw is None:
        raise InputValidationError("price is missing or invalid")
    text = str(raw).replace("€", "").replace(" ", "").replace(",", ".")
    try:
        price = Decimal(text)
    except InvalidOperation:
        raise InputValidationError(f"price '{raw}' is not a number") from None
    if not price.is_finite() or price < 0:
        raise InputValidationError(f"price '{raw}' is not a valid amount")
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)


def resolve_price(pricing: Mapping[str, Any] | None, category: str, service_name: str) -> Decimal:
    try:
        details = (pricing or {})[category][service_name]
    except (KeyError, TypeError):
        raise InputValidationError(
            f"service '{category}{SERVICE_SEPARATOR}{service_name}' is not offered by this salon"
        ) from None
    raw = details.get("price") if isinstance(details, Mapping) else details
    return parse_price(raw)


@dataclass
class BookingRequest:
    salon_id: int
    category: str
    service_name: str
    date: Any
    slot: Any
    first_name: str
    last_name: str
    phone: str
    client_id: str | None = None
    client_email: str | None = None

    REQUIRED = ("category", "service_name", "date", "slot", "first_name", "last_name", "phone")

    @classmethod
    def from_payload(cls, salon_id: int, payload: Mapping[str, Any],
                     client_id: str | None = None, client_email: str | None = None) -> "BookingRequest":
        category = (payload.get("category") or "").strip()
        service_name = (payload.get("service_name") or "").strip()
        if not (category and service_name) and payload.get("service"):
            category, service_name = split_service(payload["service"])
        return cls(
            salon_id=salon_id,
            category=category,
            service_name=service_name,
            date=payload.get("date"),
            slot=payload.get("time") or payload.get("slot"),
            first_name=(payload.get("first_name") or "").strip(),
            last_name=(payload.get("last_name") or "").strip(),
            phone=(payload.get("phone") or "").strip(),
            client_id=client_id,
            client_email=client_email,
        )

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED if not getattr(self, name)]

    @property
    def service_label(self) -> str:
        return f"{self.category}{SERVICE_SEPARATOR}{self.service_name}"


@dataclass
class BookingAttempt:
    request: BookingRequest
    state: BookingState = BookingState.DRAFT
    reason: str | None = None
    day: date | None = None
    slot: time | None = None
    price: Decimal | None = None
    reservation: Any = None
    history: list[BookingState] = field(default_factory=lambda: [BookingState.DRAFT])

    def move_to(self, state: BookingState, reason: str | None = None) -> None:
        self.state = state
        self.reason = reason
        self.history.append(state)

    def to_dict(self) -> dict[str, object]:
        return {
            "state": self.state.value,
            "reason": self.reason,
            "date": self.day.isoformat() if self.day else None,
            "time": format_slot(self.slot) if self.slot else None,
            "service": self.request.service_label,
            "price": float(self.price) if self.price is not None else None,
            "reservation": self.reservation.to_dict() if self.reservation is not None else None,
        }


class BookingWorkflow:
    """Validates, re-checks and inserts reservations, then notifies."""

    def __init__(
        self,
        gateway: StoreGateway,
        availability: AvailabilityEngine,
        notifier: Any = None,
        *,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.gateway = gateway
        self.availability = availability
        self.notifier = notifier
        self.now = now

    @staticmethod
    def _expect(attempt: BookingAttempt, state: BookingState) -> None:
        if attempt.state is not state:
            raise ValueError(f"booking attempt is {attempt.state.value}, expected {state.value}")

    # -- client booking ----------------------------------------------------

    def validate(self, request: BookingRequest) -> BookingAttempt:
        """Draft -> Validated. Raises ``InputValidationError`` before any write."""
        attempt = BookingAttempt(request=request)
        missing = request.missing_fields()
        if missing:
            raise InputValidationError(f"{', '.join(missing)} required", missing=missing)

        day = parse_date(request.date)
        slot = parse_slot(request.slot)
        self.availability.check_date(day)

        salon = self.gateway.get_or_404("salons", request.salon_id)
        if not salon.is_verified:
            raise PermissionDeniedError("this salon is not open for booking until it has been verified")
        price = resolve_price(salon.pricing, request.category, request.service_name)
        if format_slot(slot) not in self.availability.template(salon, day):
            raise InputValidationError(
                f"{format_slot(slot)} is not a bookable slot on {day.isoformat()}",
                date=day.isoformat(),
                time=format_slot(slot),
            )

        attempt.day, attempt.slot, attempt.price = day, slot, price
        attempt.move_to(BookingState.VALIDATED)
        return attempt

    def submit(self, attempt: BookingAttempt) -> BookingAttempt:
        """Validated -> Submitted, or Rejected when the slot was taken meanwhile."""
        self._expect(attempt, BookingState.VALIDATED)
        if not self.availability.is_free(attempt.request.salon_id, attempt.day, attempt.slot):
            logger.info("Slot %s %s of salon %s taken before submission",
                        attempt.day, format_slot(attempt.slot), attempt.request.salon_id)
            attempt.move_to(BookingState.REJECTED, SlotTaken.__name__)
            return attempt
        attempt.move_to(BookingState.SUBMITTED)
        return attempt

    def confirm(self, attempt: BookingAttempt) -> BookingAttempt:
        """Submitted -> Confirmed. The insert is guarded by the slot constraint."""
        self._expect(attempt, BookingState.SUBMITTED)
        request = attempt.request
        row = {
            "salon_id": request.salon_id,
            "client_id": request.client_id,
            "date": attempt.day,
            "time": attempt.slot,
            "service": request.service_label,
            "price": attempt.price,
            "full_name": f"{request.first_name} {request.last_name}",
            "phone": request.phone,
        }
        try:
            attempt.reservation = self.gateway.insert("reservations", row)
        except NotFoundError:
            raise
        except RemoteValidationError:
            if self.availability.is_free(request.salon_id, attempt.day, attempt.slot):
                # Rejected for another reason than the slot constraint.
                raise
            logger.warning("Double booking prevented for salon %s on %s at %s",
                           request.salon_id, attempt.day, format_slot(attempt.slot))
            attempt.move_to(BookingState.REJECTED, SlotTaken.__name__)
            return attempt

        attempt.move_to(BookingState.CONFIRMED)
        self._notify(attempt)
        return attempt

    def _notify(self, attempt: BookingAttempt) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.booking_confirmed(attempt.reservation, attempt.request.client_email)
        except Exception:
            logger.exception("Confirmation notification failed for reservation %s",
                             attempt.reservation.reservation_id)

    def book(self, request: BookingRequest) -> BookingAttempt:
        attempt = self.submit(self.validate(request))
        if attempt.state is BookingState.REJECTED:
            return attempt
        return self.confirm(attempt)

    def cancel(self, reservation_id: int, actor_id: str | None) -> None:
        """Delete a reservation on behalf of its client or the salon owner."""
        reservation = self.gateway.get_or_404("reservations", reservation_id)
        salon = self.gateway.get_or_404("salons", reservation.salon_id)
        if actor_id is None or actor_id not in {reservation.client_id, salon.owner_id}:
            raise PermissionDeniedError("only the client or the salon owner can cancel this reservation")
        self.gateway.delete("reservations", reservation_id)
        logger.info("Reservation %s cancelled by %s", reservation_id, actor_id)

    # -- salon owner operations ---------------------------------------------

    def _owned_salon(self, salon_id: int, owner_id: str | None) -> Any:
        salon = self.gateway.get_or_404("salons", salon_id)
        if owner_id is None or salon.owner_id != owner_id:
            raise PermissionDeniedError("only the salon owner can manage its reservations")
        return salon

    def _price_for(self, salon: Any, service: str, explicit: Any) -> Decimal:
        if explicit not in (None, ""):
            return parse_price(explicit)
        return resolve_price(salon.pricing, *split_service(service))

    def add_walk_in(self, salon_id: int, owner_id: str | None, payload: Mapping[str, Any]) -> Any:
        """Reservation entered by the owner, without a client account."""
        salon = self._owned_salon(salon_id, owner_id)
        required = ("date", "time", "service", "full_name", "phone")
        missing = [name for name in required if not payload.get(name)]
        if missing:
            raise InputValidationError(f"{', '.join(missing)} required", missing=missing)

        row = {
            "salon_id": salon_id,
            "client_id": None,
            "date": parse_date(payload["date"]),
            "time": parse_slot(payload["time"]),
            "service": payload["service"].strip(),
            "price": self._price_for(salon, payload["service"], payload.get("price")),
            "full_name": payload["full_name"].strip(),
            "phone": payload["phone"].strip(),
        }
        try:
            return self.gateway.insert("reservations", row)
        except NotFoundError:
            raise
        except RemoteValidationError as exc:
            if self.availability.is_free(salon_id, row["date"], row["time"]):
                raise
            raise SlotTaken("this slot is already booked",
                            date=row["date"].isoformat(), time=format_slot(row["time"])) from exc

    def reschedule(self, reservation_id: int, owner_id: str | None, patch: Mapping[str, Any]) -> Any:
        reservation = self.gateway.get_or_404("reservations", reservation_id)
        salon = self._owned_salon(reservation.salon_id, owner_id)

        changes: dict[str, Any] = {}
        if "date" in patch:
            changes["date"] = parse_date(patch["date"])
        if "time" in patch:
            changes["time"] = parse_slot(patch["time"])
        for name in ("full_name", "phone"):
            if name in patch:
                value = (patch.get(name) or "").strip()
                if not value:
                    raise InputValidationError(f"{name} cannot be empty")
                changes[name] = value
        if "service" in patch:
            changes["service"] = (patch.get("service") or "").strip()
            if not changes["service"]:
                raise InputValidationError("service cannot be empty")
        if "price" in patch:
            changes["price"] = parse_price(patch["price"])
        elif "service" in changes and changes["service"] != reservation.service:
            changes["price"] = self._price_for(salon, changes["service"], None)

        if not changes:
            return reservation
        moved = "date" in changes or "time" in changes
        target_day = changes.get("date", reservation.date)
        target_slot = changes.get("time", reservation.time)
        try:
            return self.gateway.update("reservations", reservation_id, changes)
        except NotFoundError:
            raise
        except RemoteValidationError as exc:
            if not moved or self.availability.is_free(salon.salon_id, target_day, target_slot):
                raise
            raise SlotTaken("this slot is already booked",
                            date=target_day.isoformat(), time=format_slot(target_slot)) from exc

    def list_for_salon(self, salon_id: int, owner_id: str | None,
                       date_from: Any = None, date_to: Any = None) -> list[Any]:
        self._owned_salon(salon_id, owner_id)
        low = parse_date(date_from) if date_from else None
        high = parse_date(date_to) if date_to else None
        return self.gateway.query(
            "reservations",
            {"salon_id": salon_id},
            ranges={"date": (low, high)},
            order_by=["date", "time"],
        )

    def list_for_client(self, client_id: str) -> dict[str, list[Any]]:
        rows = self.gateway.query("reservations", {"client_id": client_id}, order_by=["date", "time"])
        now = self.now()
        split: dict[str, list[Any]] = {"upcoming": [], "past": []}
        for row in rows:
            key = "past" if datetime.combine(row.date, row.time) < now else "upcoming"
            split[key].append(row)
        return split

    def revenue(self, salon_id: int, owner_id: str | None,
                date_from: Any = None, date_to: Any = None) -> dict[str, object]:
        rows = self.list_for_salon(salon_id, owner_id, date_from, date_to)
        total = sum((Decimal(row.price or 0) for row in rows), Decimal("0"))
        return {
            "salon_id": salon_id,
            "reservations": len(rows),
            "total": float(total),
            "from": parse_date(date_from).isoformat() if date_from else None,
            "to": parse_date(date_to).isoformat() if date_to else None,
        }
