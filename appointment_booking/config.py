# Configuration defaults, overridable through environment variables.
import os

from appointment_booking.booking.booking_writer import MEDICAL_SERVICES

# The shared calendar appointments are read from and written to
CALENDAR_ID = os.getenv('CALENDAR_ID', '')
# Every slot and event uses this single timezone
TIMEZONE = os.getenv('TIMEZONE', 'Asia/Singapore')

SERVICE_ACCOUNT_FILE = os.getenv('SERVICE_ACCOUNT_FILE')
# Only set when the service account impersonates a workspace user
CALENDAR_SUBJECT = os.getenv('CALENDAR_SUBJECT')

# Weekdays: 0 = Sunday ... 6 = Saturday
BUSINESS_HOURS = {
    'start': int(os.getenv('BUSINESS_START_HOUR', '9')),
    'end': int(os.getenv('BUSINESS_END_HOUR', '18')),
    'days': [1, 2, 3, 4, 5],
}

# Length of the default search window when no ?date= is given
DEFAULT_WINDOW_DAYS = int(os.getenv('DEFAULT_WINDOW_DAYS', '365'))

# Region used to read phone numbers without a leading '+'
DEFAULT_PHONE_REGION = os.getenv('DEFAULT_PHONE_REGION', 'SG')

SERVICES = list(MEDICAL_SERVICES)


def as_mapping():
    """All settings as a dict for app.config.from_mapping()."""
    return {
        'CALENDAR_ID': CALENDAR_ID,
        'TIMEZONE': TIMEZONE,
        'SERVICE_ACCOUNT_FILE': SERVICE_ACCOUNT_FILE,
        'CALENDAR_SUBJECT': CALENDAR_SUBJECT,
        'BUSINESS_HOURS': BUSINESS_HOURS,
        'DEFAULT_WINDOW_DAYS': DEFAULT_WINDOW_DAYS,
        'DEFAULT_PHONE_REGION': DEFAULT_PHONE_REGION,
        'SERVICES': SERVICES,
    }
