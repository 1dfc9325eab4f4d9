"""Shared utility functions.

parse_date:          tolerant date parsing (returns None on bad input)
parse_datetime:      ISO datetime parsing for request payloads
ensure_utc:          normalise naive datetimes read back from SQLite
as_utc_datetime:     lift a date or datetime onto a tz-aware UTC datetime
db_commit_or_error:  commit, or roll back and return an error envelope
"""
import logging
from datetime import date, datetime, time, timezone

from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def parse_date(value):
    """Return a date for an ISO date or datetime string, or None if unparseable."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for parse in (date.fromisoformat, lambda s: datetime.fromisoformat(s).date()):
        try:
            return parse(text)
        except ValueError:
            continue
    return None


def parse_datetime(value):
    """Convert an ISO-format string to a tz-aware UTC datetime.

    Accepts an existing datetime/date, an ISO string (with or without
    offset, ``Z`` suffix allowed) or None. Raises ValueError on a
    non-empty string that cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (datetime, date)):
        return as_utc_datetime(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc_datetime(datetime.fromisoformat(text))


def ensure_utc(value):
    """Attach UTC to a naive datetime (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def as_utc_datetime(value):
    """Return ``value`` as a tz-aware datetime; dates map to midnight UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


# ── Database commit helper ───────────────────────────────────────────────────

def db_commit_or_error():
    """Commit the request's unit of work.

    Returns None when the commit succeeds, otherwise rolls back and returns
    an ``api_error`` tuple: constraint violations answer 409, anything the
    database raises besides that answers 500.
    """
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Commit rejected by constraint: %s", exc.orig)
        return api_error(E.CONFLICT_DUPLICATE, "Duplicate or constraint violation")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Commit failed")
        return api_error(E.DATABASE, "Database error")
    return None
