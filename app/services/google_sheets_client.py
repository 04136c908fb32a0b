import json
import logging
from collections.abc import Sequence
from typing import Any
from urllib import error, parse, request

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"


class GoogleSheetsError(Exception):
    pass


class GoogleSheetsClient:
    def __init__(
        self,
        *,
        spreadsheet_id: str,
        sheet_tab: str = "Attendance",
        client_email: str = "",
        private_key: str = "",
        access_token: str = "",
        timeout_seconds: float = 10.0,
        api_base_url: str = "https://sheets.googleapis.com/v4",
        oauth_token_url: str = "https://oauth2.googleapis.com/token",
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_tab = sheet_tab
        self.client_email = client_email
        self.private_key = private_key
        self.access_token = access_token
        self.timeout_seconds = timeout_seconds
        self.api_base_url = api_base_url.rstrip("/")
        self.oauth_token_url = oauth_token_url
        self._credentials: service_account.Credentials | None = None

    @property
    def range_a1(self) -> str:
        return f"{self.sheet_tab}!A:J"

    def append_rows(self, values: Sequence[Sequence[Any]]) -> int:
        if not values:
            return 0
        if not self.spreadsheet_id.strip():
            raise GoogleSheetsError("Google Sheets spreadsheet id is not configured.")

        endpoint_path = (
            f"/spreadsheets/{parse.quote(self.spreadsheet_id, safe='')}"
            f"/values/{parse.quote(self.range_a1, safe='')}:append"
            f"?{parse.urlencode({'valueInputOption': 'USER_ENTERED'})}"
        )
        response_payload = self._request_json(
            "POST",
            endpoint_path,
            payload={"values": [list(row) for row in values]},
        )
        updates = response_payload.get("updates")
        updated_rows = updates.get("updatedRows") if isinstance(updates, dict) else None
        appended_count = updated_rows if isinstance(updated_rows, int) else len(values)
        logger.info(
            "Google Sheets rows appended spreadsheet_id=%s range=%s rows=%s",
            self.spreadsheet_id,
            self.range_a1,
            appended_count,
        )
        return appended_count

    def _request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        *,
        allow_refresh: bool = True,
    ) -> dict[str, Any]:
        if not self.access_token:
            self._refresh_access_token()

        target = f"{self.api_base_url}{path}"
        raw_payload: bytes | None = None
        if payload is not None:
            raw_payload = json.dumps(payload).encode("utf-8")

        req = request.Request(
            target,
            data=raw_payload,
            method=method,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
        )

        try:
            with request.urlopen(req, timeout=self.timeout_seconds) as response:
                response_body = response.read()
        except TimeoutError as exc:
            raise GoogleSheetsError("Google Sheets API request timed out.") from exc
        except error.HTTPError as exc:
            if exc.code == 401 and allow_refresh and self._can_refresh_access_token():
                self._refresh_access_token()
                return self._request_json(method, path, payload, allow_refresh=False)
            body = exc.read().decode("utf-8", errors="ignore")
            raise GoogleSheetsError(
                f"Google Sheets API HTTP {exc.code}: {body or 'empty response body'}",
            ) from exc
        except error.URLError as exc:
            raise GoogleSheetsError(
                f"Google Sheets API connection error: {exc.reason}",
            ) from exc

        if not response_body:
            return {}
        try:
            parsed_body = json.loads(response_body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise GoogleSheetsError("Google Sheets API returned invalid JSON.") from exc

        if not isinstance(parsed_body, dict):
            raise GoogleSheetsError("Google Sheets API response is not a JSON object.")
        return parsed_body

    def _can_refresh_access_token(self) -> bool:
        return bool(self.client_email.strip() and self.private_key.strip())

    def _refresh_access_token(self) -> None:
        if not self._can_refresh_access_token():
            raise GoogleSheetsError(
                "Google service account credentials are not configured.",
            )
        try:
            credentials = self._get_credentials()
            credentials.refresh(GoogleAuthRequest())
        except (GoogleAuthError, ValueError) as exc:
            raise GoogleSheetsError(f"Google service account token error: {exc}") from exc

        new_access_token = credentials.token
        if not isinstance(new_access_token, str) or not new_access_token.strip():
            raise GoogleSheetsError("Google service account token response did not include access_token.")
        self.access_token = new_access_token.strip()

    def _get_credentials(self) -> service_account.Credentials:
        if self._credentials is None:
            self._credentials = service_account.Credentials.from_service_account_info(
                {
                    "type": "service_account",
                    "client_email": self.client_email.strip(),
                    "private_key": self.private_key,
                    "token_uri": self.oauth_token_url,
                },
                scopes=[SHEETS_SCOPE],
            )
        return self._credentials
