import unittest
import os
import sys
import base64
from datetime import datetime
from unittest import mock
from zoneinfo import ZoneInfo
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from appointment_booking import config
from appointment_booking.app import app, create_app
from appointment_booking.booking.error_utils import ConfigurationError
from appointment_booking.booking.period import BusyInterval
from calendar_fakes import FakeCalendarGateway

SGT = ZoneInfo("Asia/Singapore")
CALENDAR_ID = "clinic@group.calendar.google.com"

BOOKING = {
    "name": "Jane Tan",
    "email": "jane.tan@gmail.com",
    "phone": "+1 650 253 0000",
    "service": "General Medical Consultation",
    "start": "2024-01-08T01:00:00.000Z",
    "end": "2024-01-08T01:30:00.000Z",
    "message": "Follow-up on blood test",
}


class AppTest(unittest.TestCase):
    def setUp(self):
        self._saved_config = dict(app.config)
        app.config['TESTING'] = True
        app.config['CALENDAR_ID'] = CALENDAR_ID
        app.config['TIMEZONE'] = "Asia/Singapore"
        app.config['BUSINESS_HOURS'] = {'start': 9, 'end': 18, 'days': [1, 2, 3, 4, 5]}
        app.config['DEFAULT_WINDOW_DAYS'] = 365
        # Sunday 2024-01-07 12:00 in Singapore
        app.config['CLOCK'] = lambda tz: datetime(2024, 1, 7, 12, tzinfo=SGT).astimezone(tz)
        self.calendar = FakeCalendarGateway()
        app.config['CALENDAR_GATEWAY_FACTORY'] = lambda: self.calendar
        self.client = app.test_client()

    def tearDown(self):
        app.config.clear()
        app.config.update(self._saved_config)

    def test_available_slots_for_date(self):
        self.calendar.busy = [BusyInterval(datetime(2024, 1, 8, 9, 30, tzinfo=SGT), datetime(2024, 1, 8, 10, tzinfo=SGT))]

        with self.client.get("/available-slots?date=2024-01-08") as response:
            self.assertEqual(response.status_code, 200)
            slots = response.get_json()

        self.assertEqual(len(slots), 17)
        self.assertEqual(slots[0], {"start": "2024-01-08T01:00:00Z", "end": "2024-01-08T01:30:00Z"})
        self.assertEqual(slots[1]["start"], "2024-01-08T02:00:00Z")
        self.assertEqual(slots[-1]["end"], "2024-01-08T10:00:00Z")

        calendar_id, window, timezone_name = self.calendar.queries[0]
        self.assertEqual(calendar_id, CALENDAR_ID)
        self.assertEqual(timezone_name, "Asia/Singapore")
        self.assertEqual(window.start, datetime(2024, 1, 8, tzinfo=SGT))
        self.assertEqual(window.end, datetime(2024, 1, 9, tzinfo=SGT))

    def test_available_slots_on_weekend_is_empty(self):
        response = self.client.get("/available-slots?date=2024-01-13")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), [])

    def test_available_slots_exclude_past_times_today(self):
        app.config['CLOCK'] = lambda tz: datetime(2024, 1, 8, 16, 45, tzinfo=SGT)
        response = self.client.get("/available-slots?date=2024-01-08")
        starts = [slot["start"] for slot in response.get_json()]
        # 17:00 and 17:30 local
        self.assertEqual(starts, ["2024-01-08T09:00:00Z", "2024-01-08T09:30:00Z"])

    def test_available_slots_default_window(self):
        response = self.client.get("/available-slots")
        self.assertEqual(response.status_code, 200)
        slots = response.get_json()

        self.assertEqual(slots[0]["start"], "2024-01-08T01:00:00Z")
        _, window, _ = self.calendar.queries[0]
        self.assertEqual(window.end, datetime(2025, 1, 6, 18, tzinfo=SGT))
        # Window closes Monday 2025-01-06 at 18:00, so the final slot is 17:30 local that day
        self.assertEqual(slots[-1]["start"], "2025-01-06T09:30:00Z")

    def test_available_slots_invalid_date(self):
        response = self.client.get("/available-slots?date=2024-13-45")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": "Invalid date"})
        self.assertEqual(self.calendar.queries, [])

    def test_available_slots_extreme_dates(self):
        for raw in ("9999-12-31", "0001-01-01"):
            response = self.client.get(f"/available-slots?date={raw}")
            self.assertEqual(response.status_code, 400, raw)
            self.assertEqual(response.get_json(), {"error": "Invalid date"})
        self.assertEqual(self.calendar.queries, [])

    def test_available_slots_last_supported_day(self):
        response = self.client.get("/available-slots?date=9999-12-30")
        self.assertEqual(response.status_code, 200)
        self.assertIsInstance(response.get_json(), list)

    def test_available_slots_with_unknown_timezone_is_server_error(self):
        app.config['TIMEZONE'] = "Mars/Olympus_Mons"
        response = self.client.get("/available-slots?date=2024-01-08")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "Internal Server Error"})
        self.assertEqual(self.calendar.queries, [])

    def test_available_slots_with_inverted_hours_is_server_error(self):
        app.config['BUSINESS_HOURS'] = {'start': 18, 'end': 9, 'days': [1, 2, 3, 4, 5]}
        response = self.client.get("/available-slots")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "Internal Server Error"})

    def test_create_app_rejects_unknown_timezone(self):
        with mock.patch.object(config, 'TIMEZONE', "Mars/Olympus_Mons"):
            with self.assertRaises(ConfigurationError):
                create_app()

    def test_create_app_rejects_inverted_hours(self):
        with mock.patch.object(config, 'BUSINESS_HOURS', {'start': 18, 'end': 9, 'days': [1, 2, 3, 4, 5]}):
            with self.assertRaises(ConfigurationError):
                create_app()

    def test_available_slots_upstream_failure(self):
        self.calendar.fail_fetch = True
        response = self.client.get("/available-slots?date=2024-01-08")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "Internal Server Error"})
        self.assertNotIn("quota", response.get_data(as_text=True))

    def test_book_appointment(self):
        response = self.client.post("/book-appointment", json=BOOKING)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"message": "Appointment booked successfully", "eventId": "evt-1"})
        calendar_id, draft = self.calendar.inserted[0]
        self.assertEqual(calendar_id, CALENDAR_ID)
        body = draft.to_body()
        self.assertEqual(body["summary"], "General Medical Consultation - Appointment with Jane Tan")
        self.assertEqual(body["description"],
                         "Service: General Medical Consultation\nContact: +16502530000\n"
                         "Email: jane.tan@gmail.com\nMessage: Follow-up on blood test")
        self.assertEqual(body["start"], {"dateTime": "2024-01-08T01:00:00.000Z", "timeZone": "Asia/Singapore"})
        self.assertEqual(body["end"], {"dateTime": "2024-01-08T01:30:00.000Z", "timeZone": "Asia/Singapore"})

    def test_book_appointment_missing_phone(self):
        payload = dict(BOOKING)
        del payload["phone"]

        response = self.client.post("/book-appointment", json=payload)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Missing required fields")
        self.assertEqual(response.get_json()["fields"], ["phone"])
        self.assertEqual(self.calendar.insert_calls, 0)

    def test_book_appointment_without_body(self):
        response = self.client.post("/book-appointment", data="not json", content_type="text/plain")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["fields"], ["name", "email", "phone", "service", "start", "end"])
        self.assertEqual(self.calendar.insert_calls, 0)

    def test_book_appointment_invalid_email(self):
        response = self.client.post("/book-appointment", json=dict(BOOKING, email="jane at gmail"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "Invalid fields")
        self.assertIn("email", response.get_json()["fields"])
        self.assertEqual(self.calendar.insert_calls, 0)

    def test_book_appointment_rejects_list_values(self):
        response = self.client.post("/book-appointment", json=dict(BOOKING, name=["x"]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json(), {"error": "Invalid fields",
                                               "fields": {"name": "Expected a string, got list"}})
        self.assertEqual(self.calendar.insert_calls, 0)

    def test_book_appointment_unknown_service(self):
        response = self.client.post("/book-appointment", json=dict(BOOKING, service="Haircut"))
        self.assertEqual(response.status_code, 400)
        self.assertIn("service", response.get_json()["fields"])

    def test_book_appointment_upstream_failure(self):
        self.calendar.fail_write = True
        response = self.client.post("/book-appointment", json=BOOKING)
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "Internal Server Error"})

    def test_services(self):
        response = self.client.get("/services")
        self.assertEqual(response.status_code, 200)
        self.assertIn("Health Screening", response.get_json())

    def test_test_calendar_requires_login(self):
        response = self.client.get("/test-calendar")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(self.calendar.queries, [])

    def test_test_calendar_lists_todays_events(self):
        self.calendar.events = [{"id": "e1", "summary": "Vaccinations - Appointment with Lim"}]
        credentials = base64.b64encode(b"admin:secret").decode()

        response = self.client.get("/test-calendar", headers={"Authorization": f"Basic {credentials}"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {"calendarId": CALENDAR_ID, "events": self.calendar.events})
        _, window, _ = self.calendar.queries[0]
        self.assertEqual(window.end, datetime(2024, 1, 8, tzinfo=SGT))

    def test_unknown_route(self):
        response = self.client.get("/notaroute")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json(), {"error": "Not Found"})


if __name__ == '__main__':
    unittest.main()
