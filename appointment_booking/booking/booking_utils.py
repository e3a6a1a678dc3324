# Utility functions for booking functionality
import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
import phonenumbers
from email_validator import validate_email, EmailNotValidError
from .error_utils import TimeValidationError, InvalidFieldError

# 254 characters is a common maximum for email addresses by RFC 5321 / 5322 standards
MAX_EMAIL_LENGTH = 254
# Maximum allowed input length to avoid oversized input injections.
MAX_PHONE_LENGTH = 50
MAX_MESSAGE_LENGTH = 1000
MAX_NAME_LENGTH = 200
# One day of margin either side so a local day can still be converted to UTC
MIN_BOOKING_DATE = date.min + timedelta(days=1)
MAX_BOOKING_DATE = date.max - timedelta(days=1)


def parse_iso_datetime(raw: str, default_tz: Optional[tzinfo] = None) -> datetime:
    """
    Parse an ISO-8601 instant such as '2025-03-24T16:00:00Z' or '2025-03-24T16:00:00+08:00'.

    Naive inputs are interpreted in *default_tz* (UTC if not given) so every returned datetime is aware.

    Raises TimeValidationError if the string is not ISO-8601.
    """
    if not isinstance(raw, str):
        raise TimeValidationError(f"Expected an ISO-8601 string, got {type(raw).__name__}")
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        raise TimeValidationError(f"'{raw}' is not a valid ISO-8601 date-time")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz or timezone.utc)
    return parsed


def parse_iso_date(raw: str) -> date:
    """Parse the YYYY-MM-DD value of the ?date= query parameter."""
    try:
        parsed = date.fromisoformat(raw.strip())
    except ValueError:
        raise TimeValidationError(f"'{raw}' is not a valid date")
    if not MIN_BOOKING_DATE <= parsed <= MAX_BOOKING_DATE:
        raise TimeValidationError(f"'{raw}' is out of range")
    return parsed


def sanitize_name(name: str) -> str:
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidFieldError({"name": "Name is too long"})
    return name


def sanitize_phone(phone: str, default_region: str = "SG") -> str:
    # Step 1: Remove any leading or trailing whitespace.
    phone = phone.strip()

    # Step 2: Ensure the input does not exceed the allowed length.
    if len(phone) > MAX_PHONE_LENGTH:
        raise InvalidFieldError({"phone": "Phone number input is too long"})

    # Step 3: Use a regex to ensure only allowed characters are present.
    # Allowed characters: an optional leading '+', digits, spaces, hyphens, and parentheses.
    allowed_pattern = re.compile(r'^\+?[0-9\-\(\)\s]+$')
    if not allowed_pattern.fullmatch(phone):
        raise InvalidFieldError({"phone": "Phone contains disallowed characters"})

    # Step 4: Use the phonenumbers library to parse and validate the phone number.
    try:
        # If the number starts with '+', it's likely an international format.
        if phone.startswith('+'):
            parsed_phone = phonenumbers.parse(phone, None)
        else:
            parsed_phone = phonenumbers.parse(phone, default_region)
    except phonenumbers.NumberParseException:
        raise InvalidFieldError({"phone": "Invalid phone number format"})

    # Step 5: Validate that the parsed phone is both "possible" and "valid."
    if not phonenumbers.is_possible_number(parsed_phone) or not phonenumbers.is_valid_number(parsed_phone):
        raise InvalidFieldError({"phone": "Phone number is not valid"})

    # Step 6: Canonical E.164 format for the calendar description.
    return phonenumbers.format_number(parsed_phone, phonenumbers.PhoneNumberFormat.E164)


def sanitize_email(email: str) -> str:
    email = email.strip()

    if len(email) > MAX_EMAIL_LENGTH:
        raise InvalidFieldError({"email": "Email input is too long"})

    # No DNS lookups: booking must not depend on a resolver being reachable
    try:
        valid = validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidFieldError({"email": f"Invalid email format: {str(e)}"})

    return valid.normalized


def sanitize_message(body: str) -> str:
    """
    Sanitizes the optional free-text message attached to a booking.

    The function:
      1. Trims leading and trailing whitespace.
      2. Enforces a maximum length (to avoid oversized inputs).
      3. Checks for disallowed control characters (allowing only common whitespace).
    """
    body = body.strip()

    if len(body) > MAX_MESSAGE_LENGTH:
        raise InvalidFieldError({"message": f"Message is too long. Max {MAX_MESSAGE_LENGTH} characters."})

    # Allow: newline (LF, \n), carriage return (CR, \r), and tab (\t).
    allowed_control_codes = {9, 10, 13}
    for ch in body:
        if ord(ch) < 32 and ord(ch) not in allowed_control_codes:
            raise InvalidFieldError({"message": "Message contains disallowed characters"})

    return body
