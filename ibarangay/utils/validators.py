"""Input validation helpers."""
import re
from datetime import date, datetime


class ValidationError(Exception):
    """Raised when a request field fails validation."""

    def __init__(self, field: str, message: str = None):
        if message is None:
            field, message = None, field
        super().__init__(message)
        self.field = field
        self.message = message

    def __str__(self):
        return self.message


EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
NAME_PATTERN = re.compile(r"^[A-Za-zÀ-ÿÑñ .'-]+$")


def validate_required_fields(data: dict, fields) -> None:
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(missing[0], f"Missing required fields: {', '.join(missing)}")


def sanitize_string(value, max_length: int = None) -> str:
    """Trim whitespace and collapse internal runs of spaces."""
    if value is None:
        return ''
    cleaned = re.sub(r'\s+', ' ', str(value)).strip()
    if max_length and len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def validate_email(email: str) -> str:
    email = (email or '').strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError('email', 'Invalid email address')
    return email


def validate_name(value: str, field: str = 'name') -> str:
    value = sanitize_string(value, 100)
    if not value:
        raise ValidationError(field, f'{field.replace("_", " ").capitalize()} is required')
    if not NAME_PATTERN.match(value):
        raise ValidationError(field, f'{field.replace("_", " ").capitalize()} contains invalid characters')
    return value


def validate_password(password: str) -> str:
    if not password or len(password) < 8:
        raise ValidationError('password', 'Password must be at least 8 characters long')
    return password


def validate_birthdate(value) -> date:
    """Parse a YYYY-MM-DD birthdate between 1900-01-01 and today."""
    if isinstance(value, date):
        parsed = value
    else:
        try:
            parsed = datetime.strptime(str(value or '').strip(), '%Y-%m-%d').date()
        except ValueError:
            raise ValidationError('birthdate', 'Birthdate must be in YYYY-MM-DD format')
    if parsed < date(1900, 1, 1) or parsed > date.today():
        raise ValidationError('birthdate', 'Birthdate is out of range')
    return parsed
