# ================================================================
# File     : client.py
# Purpose  : Microsoft Graph client for Entra PIM (delegated auth)
# Notes    : GET + pagination + retries, and POST for schedule
#            requests (never retried blindly).
#            - Silent token first, then device code (or browser)
#            - Proactive refresh if token expires in <5 minutes
#            - Auto-refresh token once on 401
# ================================================================

import threading
import time
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

import msal
import requests

from core.errors import AuthenticationError, NetworkError, ServerError, ThrottledError, TransportError
from core.utils import fncPrintMessage, fncRetry, fncMask

GRAPH_ROOT = "https://graph.microsoft.com/v1.0"

DEFAULT_SCOPES = [
    "https://graph.microsoft.com/User.Read",
    "https://graph.microsoft.com/RoleManagement.ReadWrite.Directory",
    "https://graph.microsoft.com/RoleAssignmentSchedule.ReadWrite.Directory",
    "https://graph.microsoft.com/RoleManagementPolicy.Read.Directory",
    "https://graph.microsoft.com/PrivilegedAccess.ReadWrite.AzureADGroup",
    "https://graph.microsoft.com/RoleManagementPolicy.Read.AzureADGroup",
]

MAX_THROTTLE_RETRIES = 3
DEFAULT_RETRY_AFTER = 5
REQUEST_TIMEOUT = 60

# safe to repeat for GETs only
RETRYABLE_ERRORS = (NetworkError, ServerError, ThrottledError)


class GraphClient:
    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        authority_host: str = "https://login.microsoftonline.com",
        scopes: Optional[List[str]] = None,
        interactive: bool = False,
        app: Optional[Any] = None,
    ):
        if not tenant_id:
            raise AuthenticationError("A tenant id (or 'organizations') is required.")
        if not client_id:
            raise AuthenticationError("A client id is required.")

        self.tenant_id = tenant_id
        self.client_id = client_id
        self.scopes = list(scopes or DEFAULT_SCOPES)
        self.interactive = interactive
        self.authority = f"{authority_host.rstrip('/')}/{tenant_id}"

        fncPrintMessage(f"Initialising Microsoft Graph client (app {fncMask(client_id)})...", "debug")

        # Token cache lives on this instance only; nothing is written to disk
        self.app = app or msal.PublicClientApplication(
            client_id=self.client_id,
            authority=self.authority,
        )

        self._token_lock = threading.Lock()
        self.token: str = ""
        self._token_expires_on: int = 0  # epoch seconds
        self._set_token(self._acquire_token())

        fncPrintMessage("Signed in to Microsoft Graph.", "success")

    # ---------- Token helpers ----------

    def _acquire_token(self) -> Dict[str, Any]:
        """Acquire a delegated token: silent -> interactive browser or device code."""
        try:
            return self._run_token_flow()
        except requests.RequestException as ex:
            raise AuthenticationError(f"Could not reach the sign-in service: {ex}") from ex

    def _run_token_flow(self) -> Dict[str, Any]:
        fncPrintMessage("Requesting Microsoft Graph access token...", "debug")
        result = None
        accounts = self.app.get_accounts()
        if accounts:
            result = self.app.acquire_token_silent(self.scopes, account=accounts[0])

        if not result:
            if self.interactive:
                result = self.app.acquire_token_interactive(scopes=self.scopes)
            else:
                flow = self.app.initiate_device_flow(scopes=self.scopes)
                if "user_code" not in flow:
                    raise AuthenticationError(
                        f"Could not start device code sign-in: {flow.get('error_description', 'Unknown error')}"
                    )
                fncPrintMessage(flow["message"], "info")
                result = self.app.acquire_token_by_device_flow(flow)

        if not result or "access_token" not in result:
            detail = (result or {}).get("error_description", "Unknown error")
            fncPrintMessage(f"MSAL Authentication failed: {detail}", "error")
            raise AuthenticationError(f"Failed to acquire access token: {detail}")
        return result

    def _set_token(self, msal_result: Dict[str, Any]) -> None:
        """Store token and expiry from MSAL result."""
        self.token = msal_result["access_token"]
        try:
            self._token_expires_on = int(msal_result.get("expires_on") or 0)
        except (TypeError, ValueError):
            self._token_expires_on = 0
        if not self._token_expires_on:
            self._token_expires_on = int(time.time()) + int(msal_result.get("expires_in", 3600))

    def _ensure_fresh_token(self) -> None:
        """Proactively refresh token if it expires in <5 minutes."""
        with self._token_lock:
            # another thread may have refreshed while we waited
            if int(time.time()) >= (self._token_expires_on - 300):
                fncPrintMessage("Refreshing access token (nearing expiry)...", "debug")
                self._set_token(self._acquire_token())

    def _refresh_after_401(self, used_token: str) -> None:
        with self._token_lock:
            if self.token == used_token:
                self._set_token(self._acquire_token())

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    # ---------- HTTP handling ----------

    @staticmethod
    def _retry_after(value: Optional[str]) -> int:
        """Retry-After as seconds; accepts delta-seconds or an HTTP-date."""
        if value is None:
            return DEFAULT_RETRY_AFTER
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            pass
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError, IndexError):
            return DEFAULT_RETRY_AFTER
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))

    @staticmethod
    def _error_body(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        err = body.get("error") if isinstance(body, dict) else None
        return err if isinstance(err, dict) else {}

    def _token_expired(self, response: requests.Response) -> bool:
        err = self._error_body(response)
        code = err.get("code") or ""
        msg = err.get("message") or ""
        return "InvalidAuthenticationToken" in code or "expired" in str(msg).lower()

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        status = response.status_code

        # Success
        if 200 <= status < 300:
            if status == 204 or not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                return {"status": status, "text": response.text}

        err = self._error_body(response)
        code = err.get("code") or ""
        msg = err.get("message") or response.text
        fncPrintMessage(f"Graph API Error [{status}] {code} -> {msg}", "debug")

        if status == 429:
            raise ThrottledError(f"Graph throttled the request: {msg}", status_code=status, code=code)
        if status >= 500:
            raise ServerError(f"Graph server error [{status}]: {msg}", status_code=status, code=code)
        raise TransportError(f"Graph request failed [{status}] {code}: {msg}", status_code=status, code=code)

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Single logical request: honours Retry-After and refreshes once on 401."""
        self._ensure_fresh_token()
        refreshed = False
        throttled = 0

        while True:
            used_token = self.token
            try:
                resp = requests.request(
                    method, url, headers=self._auth_headers(), params=params, json=payload, timeout=REQUEST_TIMEOUT
                )
            except requests.RequestException as ex:
                fncPrintMessage(f"Network error on {method} {url}: {ex}", "debug")
                raise NetworkError(f"Could not reach Microsoft Graph: {ex}", code="NetworkError") from ex

            if resp.status_code == 429 and throttled < MAX_THROTTLE_RETRIES:
                throttled += 1
                retry_after = self._retry_after(resp.headers.get("Retry-After"))
                fncPrintMessage(f"Rate limit hit. Sleeping for {retry_after}s...", "warn")
                time.sleep(retry_after)
                continue

            if resp.status_code == 401 and not refreshed and self._token_expired(resp):
                fncPrintMessage("Access token expired, attempting refresh.", "warn")
                self._refresh_after_401(used_token)
                refreshed = True
                continue

            return self._handle_response(resp)

    # ---------- Public API ----------

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Perform a GET request to a Graph endpoint (single page).
        Use get_all for paginated resources.
        """
        url = f"{GRAPH_ROOT}/{endpoint.strip().lstrip('/')}"
        fncPrintMessage(f"GET {url}", "debug")
        return fncRetry(
            lambda: self._request("GET", url, params=params),
            exceptions=RETRYABLE_ERRORS,
        )

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Retrieve all items from a paginated Graph endpoint.
        Returns a flat list of items (value) for list endpoints.
        """
        data = self.get(endpoint, params=params)

        if isinstance(data, dict) and "value" not in data:
            return [data]

        items: List[Dict[str, Any]] = list(data.get("value", []))
        next_link = data.get("@odata.nextLink")

        while next_link:
            fncPrintMessage(f"Following nextLink -> {next_link}", "debug")
            link = next_link
            page = fncRetry(
                lambda: self._request("GET", link),
                exceptions=RETRYABLE_ERRORS,
            )
            items.extend(page.get("value", []))
            next_link = page.get("@odata.nextLink")

        return items

    def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a JSON body. Not wrapped in fncRetry: resubmitting a
        schedule request could create a duplicate.
        """
        url = f"{GRAPH_ROOT}/{endpoint.strip().lstrip('/')}"
        fncPrintMessage(f"POST {url}", "debug")
        return self._request("POST", url, payload=payload)
