"""Transactional email through the Resend HTTP API."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping

import requests
from markupsafe import escape

from .availability import parse_date
from .errors import NotificationError

logger = logging.getLogger(__name__)

FRENCH_WEEKDAYS = ("lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche")
FRENCH_MONTHS = (
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
)


def format_date_french(value: Any) -> str:
    """``2024-06-01`` -> ``samedi 1 juin 2024``."""
    day: date = parse_date(value)
    return f"{FRENCH_WEEKDAYS[day.weekday()]} {day.day} {FRENCH_MONTHS[day.month - 1]} {day.year}"


def appointment_email(appointment_date: Any, time: str | None = None,
                      salon_name: str | None = None) -> tuple[str, str]:
    when = format_date_french(appointment_date)
    if time:
        when = f"{when} à {escape(time)}"
    where = f" chez <strong>{escape(salon_name)}</strong>" if salon_name else ""
    html = (
        f"<p>Votre rendez-vous{where} est prévu le <strong>{when}</strong>. "
        "Merci de ne pas oublier !</p>"
    )
    return "Rappel de rendez-vous", html


def salon_accepted_email(salon_name: str) -> tuple[str, str]:
    html = (
        f"<p>Félicitations ! Votre salon <strong>{escape(salon_name)}</strong> a été accepté "
        "sur notre plateforme. Vous pouvez maintenant gérer vos réservations.</p>"
    )
    return "Votre salon a été accepté ! 🎉", html


class EmailClient:
    """Minimal Resend client: one POST per email, no retries."""

    def __init__(self, api_key: str, api_url: str, sender: str, timeout: int = 10) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EmailClient":
        return cls(
            api_key=config.get("RESEND_API_KEY", ""),
            api_url=config.get("RESEND_API_URL", "https://api.resend.com/emails"),
            sender=config.get("MAIL_FROM", "onboarding@resend.dev"),
            timeout=config.get("MAIL_TIMEOUT", 10),
        )

    def send(self, to: str, subject: str, html: str) -> dict[str, Any]:
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Email provider unreachable: %s", exc)
            raise NotificationError(f"email provider unreachable: {exc}") from exc

        if not response.ok:
            try:
                detail = response.json().get("message")
            except ValueError:
                detail = None
            detail = detail or f"email provider returned {response.status_code}"
            logger.error("Email to %s rejected: %s", to, detail)
            raise NotificationError(detail, status=response.status_code)

        logger.info("Email '%s' sent to %s", subject, to)
        try:
            return response.json()
        except ValueError:
            return {}
