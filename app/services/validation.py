"""
Input validation and coercion helpers shared by the services.

Each helper either returns a clean Python value or raises
``ValidationError`` with a message naming the offending field.
"""

import math
import re
from datetime import date, datetime, timezone

from app.exceptions import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 100


def validate_email(email) -> str:
    """Return the trimmed email or raise on a malformed address."""
    if not email or not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    email = email.strip()
    if len(email) > 255:
        raise ValidationError("Email is too long")
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email format")
    return email


def validate_password(password) -> str:
    if not password or not isinstance(password, str):
        raise ValidationError("Password is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValidationError("Password is too long")
    return password


def require_text(value, field_name: str, max_length: int = 1000) -> str:
    """Return the trimmed string or raise if it is missing or too long."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(
            f"{field_name} is too long (max {max_length} characters)"
        )
    return value


def optional_text(value) -> str | None:
    """Trimmed string, or None for missing/blank values."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_datetime(value, field_name: str = "date") -> datetime | None:
    """
    Parse an ISO 8601 date or datetime into naive UTC.

    Accepts ``datetime``/``date`` objects, ``YYYY-MM-DD`` and full
    timestamps with or without a trailing ``Z``.  Blank values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Invalid {field_name}: {value}") from exc
    else:
        raise ValidationError(f"Invalid {field_name}: {value}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_float(value, field_name: str = "number") -> float | None:
    """Parse a finite number; thousands separators are stripped."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a valid number")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError as exc:
            raise ValidationError(f"{field_name} must be a valid number") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{field_name} must be a valid number")
    return number


def parse_int(value, default: int, minimum: int | None = None,
              maximum: int | None = None) -> int:
    """
    Lenient integer parsing for query parameters.

    Unparseable values fall back to ``default``; the result is clamped
    to ``[minimum, maximum]``.
    """
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = default
    if minimum is not None and number < minimum:
        number = minimum
    if maximum is not None and number > maximum:
        number = maximum
    return number


def parse_bool(value, default: bool | None = None) -> bool | None:
    """Interpret JSON booleans and common truthy/falsy strings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "y", "on"):
        return True
    if text in ("false", "0", "no", "n", "off"):
        return False
    return default


def pagination_meta(pagination) -> dict:
    """Describe a Flask-SQLAlchemy pagination object for JSON responses."""
    return {
        "page": pagination.page,
        "limit": pagination.per_page,
        "total": pagination.total,
        "totalPages": pagination.pages or 1,
    }


# Indonesian month abbreviations used by legacy spreadsheets.
_INDONESIAN_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "mei": 5, "jun": 6,
    "jul": 7, "agu": 8, "sep": 9, "okt": 10, "nov": 11, "des": 12,
    # English spellings that differ.
    "may": 5, "aug": 8, "oct": 10, "dec": 12,
}
_DD_MMM_YY_RE = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{2})$")


def parse_loose_date(value, field_name: str = "date") -> datetime | None:
    """
    Parse an imported date: ISO 8601 or ``DD-MMM-YY`` with Indonesian
    month abbreviations (``05-Agu-21``).  Two-digit years from 50 up
    are 19xx, below 50 are 20xx.
    """
    text = optional_text(value)
    if text is None or text == "?":
        return None
    try:
        return parse_datetime(text, field_name)
    except ValidationError:
        pass

    match = _DD_MMM_YY_RE.match(text)
    if match:
        day, month_name, year = match.groups()
        month = _INDONESIAN_MONTHS.get(month_name.lower())
        if month is not None:
            short_year = int(year)
            full_year = short_year + (1900 if short_year >= 50 else 2000)
            try:
                return datetime(full_year, month, int(day))
            except ValueError:
                pass

    raise ValidationError(
        f'Invalid {field_name} "{text}" (expected YYYY-MM-DD or DD-MMM-YY format)'
    )
