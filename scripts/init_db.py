#!/usr/bin/env python3
"""Create the salonbook tables, optionally dropping them first."""
import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from salonbook import create_app
from salonbook.extensions import db


def init_database(reset: bool = False) -> None:
    app = create_app()
    with app.app_context():
        if reset:
            db.drop_all()
            print("Dropped existing tables")
        db.create_all()
        print(f"✅ Tables ready: {', '.join(sorted(db.metadata.tables))}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    init_database(parser.parse_args().reset)
