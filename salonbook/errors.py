"""Error taxonomy shared by the gateway, the services and the HTTP layer."""
from __future__ import annotations


class SalonBookError(Exception):
    """Base class for every error raised by the salonbook package."""

    code = "error"

    def __init__(self, message: str = "", **details: object) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class InputValidationError(SalonBookError):
    """A required field is missing or malformed. Raised before any I/O."""

    code = "invalid_payload"


class ConnectivityError(SalonBookError):
    """The relational store could not be reached or failed the request."""

    code = "database_error"


class RemoteValidationError(SalonBookError):
    """The store rejected a write, e.g. a uniqueness constraint."""

    code = "conflict"


class NotFoundError(RemoteValidationError):
    code = "not_found"


class SlotTaken(RemoteValidationError):
    """The requested (salon, date, time) slot already has a reservation."""

    code = "slot_taken"


class PermissionDeniedError(SalonBookError):
    code = "forbidden"


class NotificationError(SalonBookError):
    """An outbound email could not be delivered to the provider."""

    code = "notification_error"
