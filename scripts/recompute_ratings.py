#!/usr/bin/env python3
"""Rebuild every salon's average rating and vote count from the ratings table."""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from salonbook import create_app
from salonbook.gateway import get_gateway


def recompute_all() -> None:
    app = create_app()
    with app.app_context():
        aggregator = app.extensions["ratings"]
        salons = get_gateway().query("salons", order_by="salon_id")
        for salon in salons:
            before = (salon.average_rating, salon.vote_count)
            result = aggregator.recompute(salon.salon_id)
            after = (result["average_rating"], result["vote_count"])
            marker = "fixed" if before != after else "ok"
            print(f"[{marker}] {salon.name}: {after[0]:.2f} over {after[1]} votes")
        print(f"✅ Recomputed {len(salons)} salons")


if __name__ == "__main__":
    recompute_all()
