"""Celery tasks for outbound email, and the notifier that dispatches them.

Emails are advisory: a failed send is logged and never retried, and a failed
dispatch never reaches the booking or review outcome.
"""
from __future__ import annotations

import logging

from celery import shared_task
from flask import current_app

from .errors import NotificationError
from .notifications import EmailClient, appointment_email, salon_accepted_email

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def send_appointment_email_task(email: str, appointment_date: str, time: str | None = None,
                                salon_name: str | None = None) -> bool:
    subject, html = appointment_email(appointment_date, time, salon_name)
    try:
        EmailClient.from_config(current_app.config).send(email, subject, html)
    except NotificationError as exc:
        logger.error("Appointment email to %s failed: %s", email, exc.message)
        return False
    return True


@shared_task(ignore_result=True)
def send_salon_accepted_task(owner_email: str, salon_name: str) -> bool:
    subject, html = salon_accepted_email(salon_name)
    try:
        EmailClient.from_config(current_app.config).send(owner_email, subject, html)
    except NotificationError as exc:
        logger.error("Acceptance email to %s failed: %s", owner_email, exc.message)
        return False
    return True


class TaskNotifier:
    """Hands notifications to the task queue without waiting on delivery."""

    def booking_confirmed(self, reservation, email: str | None) -> None:
        if not email:
            logger.info("No email on file for reservation %s, skipping confirmation",
                        reservation.reservation_id)
            return
        try:
            send_appointment_email_task.delay(
                email,
                reservation.date.isoformat(),
                reservation.time.strftime("%H:%M"),
                reservation.salon.name if reservation.salon else None,
            )
        except Exception:
            logger.exception("Could not dispatch confirmation for reservation %s",
                             reservation.reservation_id)

    def salon_accepted(self, owner_email: str | None, salon_name: str) -> None:
        if not owner_email:
            logger.warning("Salon %s accepted but its owner has no email", salon_name)
            return
        try:
            send_salon_accepted_task.delay(owner_email, salon_name)
        except Exception:
            logger.exception("Could not dispatch acceptance email for salon %s", salon_name)
