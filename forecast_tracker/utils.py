# forecast_tracker/utils.py
import math
from datetime import date, datetime

from forecast_tracker.core.errors import ValidationError

MAX_TITLE_LENGTH = 200
MAX_NOTES_LENGTH = 500


def parse_date(value, field_name):
    """
    Coerce an ISO string, date or datetime into a date. Empty values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError as exc:
            raise ValidationError(f"Invalid {field_name}: '{value}'") from exc
    raise ValidationError(f"Unrecognized {field_name}: {value!r}")


def parse_amount(value):
    """
    Return a strictly positive float amount.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not math.isfinite(amount):
        raise ValidationError(f"Invalid amount: {value!r}")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0.")
    return amount


def clean_title(value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Title is required.")
    title = value.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters.")
    return title


def clean_notes(value):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid notes: {value!r}")
    if len(value) > MAX_NOTES_LENGTH:
        raise ValidationError(f"Notes must be at most {MAX_NOTES_LENGTH} characters.")
    return value
