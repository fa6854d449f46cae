"""Per-salon running average of client votes.

``Salon.average_rating`` and ``Salon.vote_count`` are denormalised from the
``ratings`` table. Every vote writes the rating row and the salon aggregate in
one transaction, under a lock on the salon row, so the two never drift apart.
``recompute`` rebuilds the aggregate of older rows that need repairing.
"""
from __future__ import annotations

import logging
import math
from typing import Any

from .errors import InputValidationError
from .gateway import StoreGateway

logger = logging.getLogger(__name__)

MIN_NOTE = 1
MAX_NOTE = 5


def validate_note(note: Any) -> int:
    if isinstance(note, bool) or not isinstance(note, int) or not MIN_NOTE <= note <= MAX_NOTE:
        raise InputValidationError(f"note must be an integer between {MIN_NOTE} and {MAX_NOTE}")
    return note


def display_rating(average: float | None) -> float:
    """One-decimal value for presentation. Storage keeps full precision."""
    return round(average or 0.0, 1)


class RatingAggregator:
    def __init__(self, gateway: StoreGateway) -> None:
        self.gateway = gateway

    def rating_for(self, client_id: str, salon_id: int) -> int | None:
        row = self.gateway.first("ratings", {"client_id": client_id, "salon_id": salon_id})
        return row.note if row else None

    def submit_rating(self, client_id: str, salon_id: int, note: Any) -> dict[str, object]:
        """Insert or replace the client's vote and update the salon average.

        The salon row is locked before its aggregate is read, and the stored
        aggregate is the tally of the rating rows as seen inside this
        transaction, so a vote committed by another client in the meantime is
        never lost.
        """
        note = validate_note(note)
        if not client_id:
            raise InputValidationError("client_id is required")

        with self.gateway.transaction():
            salon = self.gateway.get_or_404("salons", salon_id, for_update=True)
            average = salon.average_rating or 0.0
            votes = salon.vote_count or 0
            existing = self.gateway.first("ratings", {"client_id": client_id, "salon_id": salon_id})

            if existing is not None:
                expected_votes = votes
                expected = (average * votes - existing.note + note) / votes if votes else None
                self.gateway.update("ratings", existing.rating_id, {"note": note})
            else:
                expected_votes = votes + 1
                expected = (average * votes + note) / expected_votes
                self.gateway.insert("ratings", {"client_id": client_id, "salon_id": salon_id, "note": note})

            new_average, new_votes = self._tally(salon_id)
            if (expected is None or new_votes != expected_votes
                    or not math.isclose(new_average, expected, abs_tol=1e-9)):
                logger.warning("Salon %s aggregate out of step with its ratings, rebuilt from %d rows",
                               salon_id, new_votes)
            self.gateway.update("salons", salon_id, {"average_rating": new_average, "vote_count": new_votes})

        logger.info("Salon %s rated %s by %s (average %.3f over %d votes)",
                    salon_id, note, client_id, new_average, new_votes)
        return {
            "salon_id": salon_id,
            "note": note,
            "average_rating": new_average,
            "display_rating": display_rating(new_average),
            "vote_count": new_votes,
            "updated": existing is not None,
        }

    def _tally(self, salon_id: int) -> tuple[float, int]:
        notes = [row.note for row in self.gateway.query("ratings", {"salon_id": salon_id})]
        return (sum(notes) / len(notes) if notes else 0.0), len(notes)

    def recompute(self, salon_id: int) -> dict[str, object]:
        with self.gateway.transaction():
            self.gateway.get_or_404("salons", salon_id, for_update=True)
            average, votes = self._tally(salon_id)
            self.gateway.update("salons", salon_id, {"average_rating": average, "vote_count": votes})
        return {"salon_id": salon_id, "average_rating": average, "vote_count": votes}
