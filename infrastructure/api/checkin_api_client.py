import logging
from typing import Any, Dict

import requests

from use_cases.auth_errors import TransportError
from use_cases.session_models import AuthResponse, PhoneCheckResponse

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class CheckInApiClient:
    """HTTP implementation of the AuthService port."""

    def __init__(self, base_url: str, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POSTs a JSON body and returns the decoded JSON object.
        Network errors, timeouts, non-2xx statuses and undecodable bodies all
        raise TransportError.
        """
        url = f"{self.base_url}{path}"
        try:
            resp = requests.post(url, json=payload, timeout=self.timeout)
        except requests.Timeout as e:
            log.error(f"❌ Request to {path} timed out after {self.timeout}s")
            raise TransportError(f"Request timed out: {e}") from e
        except requests.RequestException as e:
            log.error(f"❌ Network error while calling {path}: {e}")
            raise TransportError(f"Network error: {e}") from e

        if not 200 <= resp.status_code < 300:
            detail = _error_detail(resp)
            log.error(f"❌ {path} returned HTTP {resp.status_code}: {detail}")
            raise TransportError(f"HTTP Error: {resp.status_code} {detail}".strip(), status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(f"Decoding error: {e}", status_code=resp.status_code) from e
        if not isinstance(body, dict):
            raise TransportError("Decoding error: expected a JSON object", status_code=resp.status_code)
        return body

    def _auth_call(self, path: str, payload: Dict[str, Any]) -> AuthResponse:
        body = self._post(path, payload)
        if "success" not in body:
            raise TransportError("Decoding error: missing 'success' field")
        return AuthResponse(success=bool(body["success"]), message=body.get("message"))

    def login(self, username: str, password: str) -> AuthResponse:
        return self._auth_call("/api/auth/login/", {"username": username, "password": password})

    def register(self, username: str, password: str) -> AuthResponse:
        return self._auth_call("/api/auth/register/", {"username": username, "password": password})

    def social_auth(self, username: str) -> AuthResponse:
        return self._auth_call("/api/auth/social_auth/", {"username": username})

    def social_register(self, username: str) -> AuthResponse:
        return self._auth_call("/api/auth/social_register/", {"username": username})

    def check_phone(self, username: str) -> PhoneCheckResponse:
        body = self._post("/api/contacts/check_phno/", {"username": username})
        if "exists" not in body:
            raise TransportError("Decoding error: missing 'exists' field")
        return PhoneCheckResponse(exists=bool(body["exists"]), phone=body.get("phno"))

    def update_phone(self, username: str, phone: str) -> AuthResponse:
        return self._auth_call("/api/contacts/update_phno/", {"username": username, "phno": phone})


def _error_detail(resp) -> str:
    # Backend errors usually carry {"message": ...}; fall back to the raw text.
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "")[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("detail") or "")
    return ""
