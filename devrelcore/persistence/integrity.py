from __future__ import annotations

from sqlalchemy.exc import IntegrityError


# Postgres SQLSTATE for unique_violation.
UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION:
        return True
    # SQLite reports "UNIQUE constraint failed: <table>.<column>".
    message = str(orig).lower()
    return "unique" in message or "duplicate key" in message
