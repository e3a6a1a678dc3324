import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .booking_utils import (parse_iso_datetime, sanitize_email, sanitize_message,
                            sanitize_name, sanitize_phone)
from .error_utils import (InvalidFieldError, MissingFieldError,
                          TimeValidationError)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'email', 'phone', 'service', 'start', 'end')

MEDICAL_SERVICES = (
    'General Medical Consultation',
    'Health Screening',
    'Vaccinations',
    'Minor Surgical Procedures',
    'Others',
)


class AppointmentRequest:
    """
    Contact details and the chosen slot as submitted by the visitor.
    start/end are the ISO-8601 strings of a slot previously listed as free. They are not re-checked against the calendar.
    """

    def __init__(self, name: str, email: str, phone: str, service: str, start: str, end: str,
                 message: Optional[str] = None):
        self.name = name
        self.email = email
        self.phone = phone
        self.service = service
        self.start = start
        self.end = end
        self.message = message
        # field -> reason for JSON values that were neither text nor a number
        self.malformed: Dict[str, str] = {}

    @classmethod
    def from_json(cls, payload: Optional[Mapping[str, Any]]) -> "AppointmentRequest":
        payload = payload or {}
        values = {}
        malformed = {}
        for field in REQUIRED_FIELDS + ('message',):
            try:
                values[field] = _as_text(payload.get(field))
            except TypeError as e:
                values[field] = None
                malformed[field] = str(e)
        appointment = cls(**values)
        appointment.malformed = malformed
        return appointment

    def __repr__(self):
        return f"AppointmentRequest(name={self.name!r}, service={self.service!r}, start={self.start!r})"


class ValidationResult:

    def __init__(self, appointment: Optional[AppointmentRequest], missing: List[str], invalid: Dict[str, str]):
        # appointment holds the trimmed and normalized values when is_valid
        self.appointment = appointment
        self.missing = missing
        self.invalid = invalid

    @property
    def is_valid(self) -> bool:
        return not self.missing and not self.invalid

    def raise_for_errors(self):
        if self.missing:
            raise MissingFieldError(self.missing)
        if self.invalid:
            raise InvalidFieldError(self.invalid)


def validate(appointment: AppointmentRequest,
             services: Sequence[str] = MEDICAL_SERVICES,
             phone_region: str = 'SG') -> ValidationResult:
    """
    Check an appointment before anything is sent to the calendar.

    Required fields must be non-empty after trimming. Present fields must also be well formed:
    email and phone must validate, service must be one of *services*, start/end must be ISO-8601 and the optional
    message is length and character checked.

    Returns: ValidationResult. Nothing is raised here, call raise_for_errors() to turn it into an exception.
    """
    malformed = appointment.malformed
    missing = [field for field in REQUIRED_FIELDS
               if field not in malformed and not (getattr(appointment, field) or '').strip()]
    if missing:
        return ValidationResult(None, missing, {})

    invalid = dict(malformed)
    cleaned = {}
    for field, sanitizer in (('name', sanitize_name),
                             ('email', sanitize_email),
                             ('phone', lambda value: sanitize_phone(value, phone_region)),
                             ('message', sanitize_message)):
        value = getattr(appointment, field)
        if value is None:
            cleaned[field] = None
            continue
        try:
            cleaned[field] = sanitizer(value)
        except InvalidFieldError as e:
            invalid.update(e.fields)

    service = (appointment.service or '').strip()
    if 'service' not in invalid and service not in services:
        invalid['service'] = f"Unknown service '{service}'"

    for field in ('start', 'end'):
        if field in invalid:
            continue
        try:
            parse_iso_datetime(getattr(appointment, field))
        except TimeValidationError as e:
            invalid[field] = e.message

    if invalid:
        return ValidationResult(None, [], invalid)

    normalized = AppointmentRequest(cleaned['name'], cleaned['email'], cleaned['phone'], service,
                                    appointment.start.strip(), appointment.end.strip(),
                                    cleaned['message'] or None)
    return ValidationResult(normalized, [], {})


class CalendarEventDraft:
    """Event body for the calendar insert call."""

    def __init__(self, summary: str, description: str, start: str, end: str, timezone: str):
        self.summary = summary
        self.description = description
        self.start = start
        self.end = end
        self.timezone = timezone

    def to_body(self) -> Dict[str, Any]:
        return {"summary": self.summary,
                "description": self.description,
                "start": {"dateTime": self.start, "timeZone": self.timezone},
                "end": {"dateTime": self.end, "timeZone": self.timezone},
                }


def build_event_request(appointment: AppointmentRequest, timezone: str) -> CalendarEventDraft:
    """
    Build the calendar event for a validated appointment.
    The start/end pair is used exactly as submitted, the duration is not recomputed.
    """
    if appointment.service:
        summary = f"{appointment.service} - Appointment with {appointment.name}"
        description = f"Service: {appointment.service}\n"
    else:
        summary = f"Appointment with {appointment.name}"
        description = ""
    description += f"Contact: {appointment.phone}\nEmail: {appointment.email}"
    if appointment.message:
        description += f"\nMessage: {appointment.message}"
    return CalendarEventDraft(summary, description, appointment.start, appointment.end, timezone)


class BookingWriter:
    """
    Validates an appointment and writes it to the shared calendar through the gateway.
    Holds no state between bookings and never retries.
    """

    def __init__(self, gateway, calendar_id: str, timezone: str,
                 services: Sequence[str] = MEDICAL_SERVICES, phone_region: str = 'SG'):
        self._gateway = gateway
        self._calendar_id = calendar_id
        self._timezone = timezone
        self._services = services
        self._phone_region = phone_region

    def book(self, appointment: AppointmentRequest) -> str:
        """
        Returns: the event id assigned by the calendar.

        Raises MissingFieldError / InvalidFieldError without contacting the calendar,
        UpstreamWriteError if the insert fails.
        """
        result = validate(appointment, self._services, self._phone_region)
        result.raise_for_errors()
        draft = build_event_request(result.appointment, self._timezone)
        logger.info("Booking %s at %s", draft.summary, draft.start)
        event = self._gateway.insert_event(self._calendar_id, draft)
        logger.info("Booking submitted. Event id: %s", event["id"])
        return event["id"]


def _as_text(value) -> Optional[str]:
    # JSON may carry numbers for phone etc. bool is an int subclass but never a valid field value
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise TypeError(f"Expected a string, got {type(value).__name__}")
