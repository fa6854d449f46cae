"""Salon profile validation and search."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .availability import parse_slot
from .booking import parse_price
from .errors import InputValidationError
from .gateway import StoreGateway

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "address", "postal_code", "city", "description", "image_url")
REQUIRED_FIELDS = ("name", "address", "postal_code", "city")


def _clean_operating_hours(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise InputValidationError("operating_hours must be an object keyed by day name")
    cleaned: dict[str, Any] = {}
    for day, entry in value.items():
        if isinstance(entry, str):
            if entry.strip().lower() != "closed":
                raise InputValidationError(f"operating_hours.{day} must be 'closed' or an object")
            cleaned[day] = "closed"
            continue
        if not isinstance(entry, Mapping):
            raise InputValidationError(f"operating_hours.{day} must be 'closed' or an object")
        day_entry: dict[str, Any] = {"isOpen": bool(entry.get("isOpen", True))}
        for window in ("morning", "afternoon"):
            bounds = entry.get(window)
            if not bounds:
                continue
            if not isinstance(bounds, Mapping) or not bounds.get("start") or not bounds.get("end"):
                raise InputValidationError(f"operating_hours.{day}.{window} needs start and end")
            start, end = parse_slot(bounds["start"]), parse_slot(bounds["end"])
            if start >= end:
                raise InputValidationError(f"operating_hours.{day}.{window} ends before it starts")
            day_entry[window] = {"start": start.strftime("%H:%M"), "end": end.strftime("%H:%M")}
        cleaned[day] = day_entry
    return cleaned


def _clean_pricing(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise InputValidationError("pricing must be an object keyed by category")
    cleaned: dict[str, Any] = {}
    for category, services in value.items():
        if not isinstance(services, Mapping):
            raise InputValidationError(f"pricing.{category} must be an object keyed by service")
        cleaned[category] = {}
        for service_name, details in services.items():
            if not isinstance(details, Mapping):
                raise InputValidationError(f"pricing.{category}.{service_name} must be an object")
            price = parse_price(details.get("price"))
            cleaned[category][service_name] = {
                "price": float(price),
                "duration": details.get("duration") or "",
                "description": details.get("description") or "",
            }
    return cleaned


def _clean_social_links(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise InputValidationError("social_links must be an object")
    cleaned = {}
    for key, link in value.items():
        if not isinstance(link, Mapping) or not link.get("platform") or not link.get("url"):
            raise InputValidationError(f"social_links.{key} needs platform and url")
        cleaned[key] = {"platform": str(link["platform"]), "url": str(link["url"])}
    return cleaned


def clean_salon_payload(payload: Mapping[str, Any], partial: bool = False) -> dict[str, Any]:
    """Return the storable salon fields present in ``payload``.

    With ``partial`` false every field of ``REQUIRED_FIELDS`` must be present,
    as on registration. Owner, rating aggregate and verification flag are never
    taken from the payload.
    """
    fields: dict[str, Any] = {}
    for name in TEXT_FIELDS:
        if name in payload:
            fields[name] = (payload.get(name) or "").strip() or None

    missing = [name for name in REQUIRED_FIELDS if (not partial or name in fields) and not fields.get(name)]
    if missing:
        raise InputValidationError(f"{', '.join(missing)} required", missing=missing)

    if payload.get("operating_hours") is not None:
        fields["operating_hours"] = _clean_operating_hours(payload["operating_hours"])
    if payload.get("pricing") is not None:
        fields["pricing"] = _clean_pricing(payload["pricing"])
    if payload.get("service_types") is not None:
        types = payload["service_types"]
        if not isinstance(types, list) or not all(isinstance(item, str) for item in types):
            raise InputValidationError("service_types must be a list of strings")
        fields["service_types"] = sorted({item.strip() for item in types if item.strip()})
    if payload.get("social_links") is not None:
        fields["social_links"] = _clean_social_links(payload["social_links"])
    return fields


def search_salons(
    gateway: StoreGateway,
    *,
    postal_codes: Iterable[str] = (),
    service_type: str | None = None,
    name: str | None = None,
    min_rating: float = 0.0,
    sort: str = "rating",
    verified_only: bool = True,
) -> list[Any]:
    filters = {"is_verified": True} if verified_only else {}
    salons = gateway.query("salons", filters)

    codes = {code.strip() for code in postal_codes if code and code.strip()}
    needle = (name or "").strip().lower()
    wanted_type = (service_type or "").strip().lower()

    results = []
    for salon in salons:
        if codes and salon.postal_code not in codes:
            continue
        if wanted_type and wanted_type not in {t.lower() for t in (salon.service_types or [])}:
            continue
        if needle and needle not in (salon.name or "").lower():
            continue
        if (salon.average_rating or 0.0) < min_rating:
            continue
        results.append(salon)

    if sort == "name":
        results.sort(key=lambda s: (s.name or "").lower())
    else:
        results.sort(key=lambda s: (-(s.average_rating or 0.0), -(s.vote_count or 0), (s.name or "").lower()))
    return results


# Rows that cannot outlive their salon.
DEPENDENT_ENTITIES = ("salon_images", "reservations", "ratings", "comments")


def delete_salon(gateway: StoreGateway, salon_id: int) -> dict[str, int]:
    """Delete a salon together with the rows that reference it.

    Messages are kept as conversation history and only lose their salon
    reference. Everything happens in one transaction.
    """
    removed: dict[str, int] = {}
    with gateway.transaction():
        gateway.get_or_404("salons", salon_id)
        for entity in DEPENDENT_ENTITIES:
            removed[entity] = gateway.delete_where(entity, {"salon_id": salon_id})
        messages = gateway.query("messages", {"salon_id": salon_id})
        for message in messages:
            gateway.update("messages", message.message_id, {"salon_id": None})
        removed["messages_detached"] = len(messages)
        gateway.delete("salons", salon_id)
    logger.info("Salon %s deleted with %s", salon_id, removed)
    return removed
