#!/usr/bin/env python
"""Seed the detective_cases catalog.

Constraints:
- Refuses to run in staging or prod (CASEFILE_ENV check)
- Idempotent: upserts on id, so re-running updates titles, prices and copy
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... python ../scripts/seed_cases.py

A running API keeps its catalog cached; clear it afterwards with
DELETE /internal/catalog/cache.
"""

import os
import sys
from decimal import Decimal

SEED_CASES = [
    {
        "id": "case-001",
        "title": "The Missing Artifact",
        "description": (
            "A valuable artifact has disappeared from the city museum. "
            "Can you track down the thief?"
        ),
        "price": Decimal("9.99"),
        "difficulty": "easy",
        "image_url": "/images/cases/missing-artifact.jpg",
    },
    {
        "id": "case-002",
        "title": "The Encrypted Message",
        "description": (
            "An encrypted message was found at a crime scene. "
            "Decode the message to find the culprit."
        ),
        "price": Decimal("14.99"),
        "difficulty": "medium",
        "image_url": "/images/cases/encrypted-message.jpg",
    },
    {
        "id": "case-003",
        "title": "The Double Murder",
        "description": (
            "Two victims found in separate locations but killed by the same person. "
            "Connect the dots."
        ),
        "price": Decimal("19.99"),
        "difficulty": "hard",
        "image_url": "/images/cases/double-murder.jpg",
    },
    {
        "id": "case-004",
        "title": "The Corporate Sabotage",
        "description": "Someone is sabotaging a tech company from the inside. Identify the mole.",
        "price": Decimal("12.99"),
        "difficulty": "medium",
        "image_url": "/images/cases/corporate-sabotage.jpg",
    },
    {
        "id": "case-005",
        "title": "The Vanishing Witness",
        "description": (
            "A key witness has disappeared before the trial. Find them before it's too late."
        ),
        "price": Decimal("15.99"),
        "difficulty": "medium",
        "image_url": "/images/cases/vanishing-witness.jpg",
    },
]


def seed_cases(db) -> int:
    """Upsert SEED_CASES and commit. Returns the number of cases written."""
    from casefile.db.models import DetectiveCase
    from casefile.db.session import dialect_insert, transaction

    insert = dialect_insert(db)
    with transaction(db):
        for case in SEED_CASES:
            stmt = insert(DetectiveCase).values(**case)
            db.execute(
                stmt.on_conflict_do_update(
                    index_elements=["id"],
                    set_={
                        key: getattr(stmt.excluded, key)
                        for key in ("title", "description", "price", "difficulty", "image_url")
                    },
                )
            )
    return len(SEED_CASES)


def main():
    # 1. Environment check (hard fail in staging/prod)
    casefile_env = os.getenv("CASEFILE_ENV", "local")
    if casefile_env not in ("local", "test"):
        print(f"ERROR: seed_cases.py refuses to run in CASEFILE_ENV={casefile_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from casefile.db.session import create_db_engine, create_session_factory

    engine = create_db_engine(database_url)
    db = create_session_factory(engine)()
    try:
        count = seed_cases(db)
    finally:
        db.close()
        engine.dispose()

    db_display = database_url.split("@")[1] if "@" in database_url else database_url
    print(f"Database: {db_display}")
    print(f"CASEFILE_ENV: {casefile_env}")
    print(f"Upserted {count} cases: {', '.join(c['id'] for c in SEED_CASES)}")


if __name__ == "__main__":
    main()
