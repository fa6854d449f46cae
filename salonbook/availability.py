"""Bookable slot computation.

A salon's template slot sequence for a given date comes from its configured
``operating_hours`` for that weekday. Salons that never configured hours fall
back to ``DEFAULT_TEMPLATE``. Free slots are the template minus the times that
already hold a reservation, kept in ascending order. Dates and times are
local wall-clock values; no timezone conversion happens here.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Mapping

from .errors import InputValidationError
from .gateway import StoreGateway

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE: tuple[str, ...] = (
    "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
    "14:00", "14:30", "15:00", "15:30", "16:00", "16:30", "17:00",
)

DAY_NAMES = ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche")
ENGLISH_DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except (TypeError, ValueError):
        raise InputValidationError("date must be in YYYY-MM-DD format") from None


def parse_slot(value: Any) -> time:
    """Parse ``HH:MM`` (or ``HH:MM:SS``) into a minute-granularity time."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        parsed = time.fromisoformat(str(value).strip())
    except (TypeError, ValueError):
        raise InputValidationError("time must be in HH:MM format") from None
    return parsed.replace(second=0, microsecond=0)


def format_slot(value: time) -> str:
    return value.strftime("%H:%M")


def slots_between(start: Any, end: Any, step_minutes: int) -> list[str]:
    """Slots starting at ``start`` every ``step_minutes`` that end by ``end``."""
    if step_minutes <= 0:
        raise InputValidationError("slot length must be positive")
    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, parse_slot(start))
    stop = datetime.combine(anchor, parse_slot(end))
    step = timedelta(minutes=step_minutes)
    slots = []
    while current + step <= stop:
        slots.append(format_slot(current.time()))
        current += step
    return slots


def _day_entry(operating_hours: Mapping[str, Any], day: date) -> Any:
    wanted = {DAY_NAMES[day.weekday()], ENGLISH_DAY_NAMES[day.weekday()]}
    for key, entry in operating_hours.items():
        if str(key).strip().lower() in wanted:
            return entry
    return None


def template_for_day(
    operating_hours: Mapping[str, Any] | None,
    day: date,
    step_minutes: int = 30,
) -> list[str]:
    """Return the ordered template slot sequence a salon offers on ``day``."""
    if not operating_hours:
        return list(DEFAULT_TEMPLATE)

    entry = _day_entry(operating_hours, day)
    if entry is None or isinstance(entry, str):
        # Missing day or the "closed" marker.
        return []
    if not isinstance(entry, Mapping) or entry.get("isOpen") is False:
        return []

    slots: set[str] = set()
    for window in ("morning", "afternoon"):
        bounds = entry.get(window) or {}
        if bounds.get("start") and bounds.get("end"):
            slots.update(slots_between(bounds["start"], bounds["end"], step_minutes))
    return sorted(slots)


class AvailabilityEngine:
    """Computes free slots for a salon and date from the reservations table."""

    def __init__(
        self,
        gateway: StoreGateway,
        *,
        slot_minutes: int = 30,
        reject_past_dates: bool = False,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.gateway = gateway
        self.slot_minutes = slot_minutes
        self.reject_past_dates = reject_past_dates
        self.clock = clock

    def check_date(self, day: date) -> None:
        if self.reject_past_dates and day < self.clock():
            raise InputValidationError("date is in the past", date=day.isoformat())

    def template(self, salon: Any, day: date) -> list[str]:
        return template_for_day(salon.operating_hours, day, self.slot_minutes)

    def reserved_slots(self, salon_id: int, day: date) -> set[str]:
        rows = self.gateway.query("reservations", {"salon_id": salon_id, "date": day})
        return {format_slot(row.time) for row in rows}

    def free_slots(self, salon_id: int, day: Any) -> list[str]:
        day = parse_date(day)
        self.check_date(day)
        salon = self.gateway.get_or_404("salons", salon_id)
        reserved = self.reserved_slots(salon_id, day)
        return [slot for slot in self.template(salon, day) if slot not in reserved]

    def is_free(self, salon_id: int, day: Any, slot: Any) -> bool:
        return format_slot(parse_slot(slot)) not in self.reserved_slots(salon_id, parse_date(day))

    def week_availability(self, salon_id: int, start: Any, days: int = 7) -> dict[str, list[str]]:
        """Free slots for ``days`` consecutive dates, fetched with one range query.

        Under the past-date policy, days before today are listed with no slots.
        """
        start = parse_date(start)
        end = start + timedelta(days=days - 1)
        salon = self.gateway.get_or_404("salons", salon_id)
        rows = self.gateway.query(
            "reservations",
            {"salon_id": salon_id},
            ranges={"date": (start, end)},
        )
        reserved: dict[date, set[str]] = {}
        for row in rows:
            reserved.setdefault(row.date, set()).add(format_slot(row.time))

        week = {}
        for offset in range(days):
            day = start + timedelta(days=offset)
            if self.reject_past_dates and day < self.clock():
                week[day.isoformat()] = []
                continue
            taken = reserved.get(day, set())
            week[day.isoformat()] = [slot for slot in self.template(salon, day) if slot not in taken]
        logger.debug("Computed %d-day availability for salon %s from %s", days, salon_id, start)
        return week
