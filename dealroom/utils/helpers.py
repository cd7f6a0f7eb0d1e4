"""Shared utility functions used by the diligence services and blueprints.

parse_date:       lenient ISO parsing (returns None on bad input)
parse_date_input: strict parsing (raises ValidationError on bad input)
commit_or_raise:  commit the session or roll back and raise StoreError
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from dealroom.core.exceptions import StoreError, ValidationError
from dealroom.models import db

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO date or ISO datetime) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field: str):
    """Parse a date, raising ValidationError on non-empty bad input."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(
            f"{field} must be an ISO date (YYYY-MM-DD)",
            details={field: "invalid date"},
        )
    return parsed


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise(operation: str) -> None:
    """Commit the current SQLAlchemy session or raise StoreError.

    The session is rolled back before raising so the caller never observes
    half-applied state.

    Usage::

        db.session.add(obj)
        commit_or_raise("create_request")
    """
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit operation=%s", operation)
        raise StoreError(operation, exc) from exc
