from google.oauth2 import service_account
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from pathlib import Path
from typing import Any, Dict, List, Optional
import httplib2
import logging
import os

from .booking_writer import CalendarEventDraft
from .error_utils import TimeValidationError, UpstreamFetchError, UpstreamWriteError
from .period import BusyInterval, TimeWindow

logger = logging.getLogger(__name__)

# Define the required scope
SCOPES = ["https://www.googleapis.com/auth/calendar"]

# Failures raised by googleapiclient, google-auth (ValueError for a malformed key file) and the transport
UPSTREAM_ERRORS = (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError, ValueError)


class CalendarGateway:
    """
    Read/write capability on the shared calendar. Subclasses talk to a real calendar service, tests use an in-memory fake.
    """

    def query_busy(self, calendar_id: str, window: TimeWindow, timezone: str) -> List[BusyInterval]:
        raise NotImplementedError

    def insert_event(self, calendar_id: str, draft: CalendarEventDraft) -> Dict[str, Any]:
        raise NotImplementedError

    def list_events(self, calendar_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
        raise NotImplementedError


class GoogleCalendarGateway(CalendarGateway):

    def __init__(self, service_account_file: Optional[str] = None, subject: Optional[str] = None, service=None):
        self._service_account_file = service_account_file
        # Workspace user to impersonate, only needed with domain-wide delegation
        self._subject = subject
        self._service = service

    @property
    def service(self):
        # Authorize on first use so a bad key surfaces as an upstream error of the current request
        if self._service is None:
            self._service = self._authorize()
        return self._service

    def _find_api_key(self) -> str:
        """
        Since Credentials.from_service_acccount_file() takes file path, find the file path to either the environment variable in prod or local dev file.
        """
        api_key_path = self._service_account_file or os.getenv('SERVICE_ACCOUNT_FILE')
        # If none, then get local development key
        if not api_key_path:
            api_key_path = Path("./appointment_booking/service_account.json")
        return api_key_path

    def _authorize(self):
        creds = service_account.Credentials.from_service_account_file(
            self._find_api_key(),
            scopes=SCOPES,
            subject=self._subject
        )
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    def query_busy(self, calendar_id: str, window: TimeWindow, timezone: str) -> List[BusyInterval]:
        """
        Busy intervals of *calendar_id* inside *window* from the freebusy endpoint.
        A calendar missing from the response, or with no busy list, is free for the whole window.
        """
        body = {"timeMin": window.start.isoformat(),
                "timeMax": window.end.isoformat(),
                "timeZone": timezone,
                "items": [{"id": calendar_id}],
                }
        logger.info("Querying freebusy for %s between %s and %s", calendar_id, body["timeMin"], body["timeMax"])
        try:
            response = self.service.freebusy().query(body=body).execute()
        except UPSTREAM_ERRORS as e:
            raise UpstreamFetchError(f"Freebusy query failed: {e}") from e

        calendar = response.get("calendars", {}).get(calendar_id, {})
        if calendar.get("errors"):
            # e.g. notFound when the service account has no access to the calendar
            raise UpstreamFetchError(f"Freebusy reported errors for {calendar_id}: {calendar['errors']}")
        try:
            return [BusyInterval.from_dict(raw) for raw in calendar.get("busy", [])]
        except (KeyError, TimeValidationError) as e:
            raise UpstreamFetchError(f"Malformed busy interval in freebusy response: {e}") from e

    def insert_event(self, calendar_id: str, draft: CalendarEventDraft) -> Dict[str, Any]:
        logger.info("Inserting event '%s' into %s", draft.summary, calendar_id)
        try:
            event = self.service.events().insert(calendarId=calendar_id, body=draft.to_body()).execute()
        except UPSTREAM_ERRORS as e:
            raise UpstreamWriteError(f"Event insert failed: {e}") from e
        if not event.get("id"):
            raise UpstreamWriteError("Event insert returned no id")
        return {"id": event["id"]}

    def list_events(self, calendar_id: str, window: TimeWindow) -> List[Dict[str, Any]]:
        logger.info("Listing events for %s", calendar_id)
        try:
            response = self.service.events().list(calendarId=calendar_id,
                                                  timeMin=window.start.isoformat(),
                                                  timeMax=window.end.isoformat(),
                                                  singleEvents=True,
                                                  orderBy="startTime").execute()
        except UPSTREAM_ERRORS as e:
            raise UpstreamFetchError(f"Event listing failed: {e}") from e
        return response.get("items", [])
