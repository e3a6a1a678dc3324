# Custom exceptions to be used throughout the project.

class TimeValidationError(Exception):
    """
    To be raised when a time input cannot be used by the booking functions.
    May be raised under the following circumstances:
        1. Time input does not match ISO-8601 format
        2. The requested date query parameter is not a valid calendar date, or is too close to date.min/date.max
        3. Business hours are outside 0-23 or the opening hour is not before the closing hour
    Bad business settings are re-raised as ConfigurationError by the app so they never reach a client as a 400.
    """
    # By default Exception class takes a tuple of arguments
    def __init__(self, *args):
        super().__init__(*args)
        self.message = args[0] if args else "Invalid time input"


class ValidationError(Exception):
    """Base for appointment input errors. Maps to a client error at the HTTP boundary."""

    message = "Invalid appointment"

    def __init__(self, fields=None):
        super().__init__(self.message, fields)
        self.fields = fields


class MissingFieldError(ValidationError):
    """
    Raised before contacting the calendar when a required appointment field is absent or blank.
    fields: list of the missing field names in declaration order.
    """

    message = "Missing required fields"


class InvalidFieldError(ValidationError):
    """
    Raised when fields are present but malformed (bad email, phone, unknown service, etc).
    fields: dict of field name -> reason.
    """

    message = "Invalid fields"


class UpstreamError(Exception):
    """Any failure reported by the calendar service (network, auth, quota). The underlying error is chained as __cause__."""


class UpstreamFetchError(UpstreamError):
    pass


class UpstreamWriteError(UpstreamError):
    pass


class ConfigurationError(Exception):
    """
    The deployment settings (TIMEZONE, BUSINESS_HOURS) cannot be used.
    Raised by create_app() at startup, and at request time if app.config is changed afterwards. Never a client error.
    """
