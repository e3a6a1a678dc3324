from datetime import datetime, timedelta
import logging
import os
import secrets
from functools import wraps
from flask import Flask, request, g, jsonify, current_app
from flask_debugtoolbar import DebugToolbarExtension
from flask_httpauth import HTTPBasicAuth
from googleapiclient.errors import HttpError
from werkzeug.security import generate_password_hash, check_password_hash
from appointment_booking import config
from appointment_booking.booking import error_utils, slot_generator, booking_writer, calendar_gateway
from appointment_booking.booking import booking_utils as util
from appointment_booking.booking.period import TimeWindow

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


def default_gateway_factory():
    return calendar_gateway.GoogleCalendarGateway(current_app.config['SERVICE_ACCOUNT_FILE'],
                                                  current_app.config['CALENDAR_SUBJECT'])


def check_business_settings(settings):
    """Raise ConfigurationError if the timezone or business hours in *settings* are unusable."""
    try:
        tz = slot_generator.as_timezone(settings['TIMEZONE'])
        hours = slot_generator.BusinessHoursTemplate.from_config(settings['BUSINESS_HOURS'])
    except error_utils.TimeValidationError as e:
        raise error_utils.ConfigurationError(f"Bad business settings: {e.message}") from e
    return tz, hours


def create_app():
    app = Flask(__name__)
    app.secret_key = secrets.token_hex(32) #256 bit
    app.config['SECRET_KEY'] = app.secret_key
    app.config.from_mapping(config.as_mapping())
    # Swapped out in tests for an in-memory calendar and a fixed clock
    app.config['CALENDAR_GATEWAY_FACTORY'] = default_gateway_factory
    app.config['CLOCK'] = datetime.now
    # A bad TIMEZONE or BUSINESS_START_HOUR/BUSINESS_END_HOUR stops the app here instead of failing every request
    check_business_settings(app.config)
    if not os.environ.get('FLASK_ENV') == 'production':
        app.config["DEBUG_TB_INTERCEPT_REDIRECTS"] = False  # Prevents redirect issues
    return app

app = create_app()
# Set to make Flask debug toolbar work
if not os.environ.get('FLASK_ENV') == 'production':
    app.debug=True
auth = HTTPBasicAuth()


# Must set this in prod
prod_hash = os.getenv('HASH_ADMIN')

if prod_hash:
    users = {
        "admin": generate_password_hash(prod_hash)
    }
else: # For dev
    users = {
        "admin": generate_password_hash('secret')
    }

@auth.verify_password
def verify_password(username, password):
    if username in users and check_password_hash(users.get(username), password):
        return username

@auth.error_handler
def auth_error(status):
    return jsonify({"error": "Unauthorized"}), status

# Use decorator to create g.calendar within the request context so each request gets its own gateway and nothing is shared between requests
def instantiate_gateway(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.calendar = current_app.config['CALENDAR_GATEWAY_FACTORY']()
        return f(*args, **kwargs)
    return decorated_function


def _business_settings():
    return check_business_settings(current_app.config)

def _now(tz):
    # Only place the clock is read; slot generation gets "now" as an argument
    return current_app.config['CLOCK'](tz)


@app.route("/available-slots", methods=["GET"])
@instantiate_gateway
def available_slots():
    tz, hours = _business_settings()
    now = _now(tz)

    # Single day when ?date=YYYY-MM-DD is given, otherwise the long default window from now
    requested_date = request.args.get('date', '').strip()
    if requested_date:
        try:
            day = util.parse_iso_date(requested_date)
        except error_utils.TimeValidationError:
            return jsonify({"error": "Invalid date"}), 400
        try:
            window = slot_generator.day_window(day, tz)
        except OverflowError:
            return jsonify({"error": "Invalid date"}), 400
    else:
        window = slot_generator.default_window(now, hours, tz, app.config['DEFAULT_WINDOW_DAYS'])

    busy = g.calendar.query_busy(app.config['CALENDAR_ID'], window, app.config['TIMEZONE'])
    slots = slot_generator.generate_slots(window, hours, busy, now, tz)
    logger.info(f"Listing {len(slots)} free slots for {window!r} against {len(busy)} busy intervals")
    return jsonify([slot.to_dict() for slot in slots])


@app.route("/book-appointment", methods=["POST"])
@instantiate_gateway
def book_appointment():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    appointment = booking_writer.AppointmentRequest.from_json(payload)
    writer = booking_writer.BookingWriter(g.calendar,
                                          app.config['CALENDAR_ID'],
                                          app.config['TIMEZONE'],
                                          app.config['SERVICES'],
                                          app.config['DEFAULT_PHONE_REGION'])
    # Raises ValidationError before the calendar is touched, UpstreamWriteError if the insert fails
    event_id = writer.book(appointment)
    return jsonify({"message": "Appointment booked successfully", "eventId": event_id})


@app.route("/services", methods=["GET"])
def list_services():
    return jsonify(app.config['SERVICES'])


# Connectivity check for the admin: today's remaining events on the shared calendar
@app.route("/test-calendar", methods=["GET"])
@auth.login_required
@instantiate_gateway
def test_calendar():
    tz, _ = _business_settings()
    now = _now(tz)
    end_of_day = datetime.combine(now.date() + timedelta(days=1), datetime.min.time(), tzinfo=tz)
    events = g.calendar.list_events(app.config['CALENDAR_ID'], TimeWindow(now, end_of_day))
    return jsonify({"calendarId": app.config['CALENDAR_ID'], "events": events})


@app.errorhandler(error_utils.ValidationError)
def handle_invalid_appointment(error):
    logger.info(f"Rejected appointment: {error.message} {error.fields}")
    return jsonify({"error": error.message, "fields": error.fields}), 400

@app.errorhandler(error_utils.TimeValidationError)
def handle_invalid_time(error):
    return jsonify({"error": error.message}), 400

# Settings problems are the operator's, not the caller's
@app.errorhandler(error_utils.ConfigurationError)
def handle_bad_configuration(error):
    logger.error(f"Misconfigured: {error}", exc_info=error)
    return jsonify({"error": "Internal Server Error"}), 500

# Upstream failures are logged in full but the caller only gets a generic message
@app.errorhandler(error_utils.UpstreamError)
def handle_upstream_error(error):
    logger.error(f"Calendar request failed: {error}", exc_info=error)
    return jsonify({"error": "Internal Server Error"}), 500

# Handle an invalid googleapiclient response that escaped the gateway
@app.errorhandler(HttpError)
def handle_bad_api_call(error):
    logger.error(f"Google API call failed: {error}", exc_info=error)
    return jsonify({"error": "Internal Server Error"}), 500

@app.errorhandler(404)
def error_handler(error):
    return jsonify({"error": "Not Found"}), 404


if __name__ == '__main__':
    # production
    if os.environ.get('FLASK_ENV') == 'production':
       app.run(debug=False)
    else:
       toolbar = DebugToolbarExtension(app)
       app.run(debug=True, port=5003)
