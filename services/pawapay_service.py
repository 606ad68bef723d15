"""
pawaPay client for mobile-money deposits
"""
import os
from typing import Any, Dict, List, Optional

import requests

from utils.logger_factory import new_logger

log = new_logger("pawapay_service")

PAWAPAY_SANDBOX_URL = "https://api.sandbox.pawapay.io"
PAWAPAY_PRODUCTION_URL = "https://api.pawapay.io"
PAWAPAY_TIMEOUT_SECONDS = float(os.getenv("PAWAPAY_TIMEOUT_SECONDS", "15"))


class PawaPayError(Exception):
    """Non-2xx answer, transport failure or unreadable body from pawaPay."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PawaPayClient:
    """Thin wrapper over the pawaPay v1 REST API. Never retries on its own."""

    def __init__(self, api_token: str, base_url: str = PAWAPAY_SANDBOX_URL,
                 timeout: float = PAWAPAY_TIMEOUT_SECONDS, session: Optional[requests.Session] = None):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, json=payload, headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as e:
            log.error(f"{method} {path} failed: {e}")
            raise PawaPayError(f"pawaPay unreachable: {e}") from e

        log.info(f"{method} {path} -> HTTP {response.status_code}")
        if not response.ok:
            log.error(f"pawaPay error response for {method} {path}: {response.text[:500]}")
            raise PawaPayError(
                f"pawaPay API error: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as e:
            raise PawaPayError("pawaPay returned a malformed response", status_code=response.status_code,
                               body=response.text) from e

    def initiate_deposit(self, deposit_request: Dict[str, Any]) -> Dict[str, Any]:
        """POST /deposits. Returns {depositId, status, created, reason?}."""
        data = self._request("POST", "/deposits", deposit_request)
        if not isinstance(data, dict) or not data.get("status"):
            raise PawaPayError("pawaPay deposit response is missing a status", body=str(data))
        return data

    def get_deposit(self, deposit_id: str) -> Dict[str, Any]:
        """
        GET /deposits/{depositId}. pawaPay answers with a list; a bare object is
        accepted as well.
        """
        data = self._request("GET", f"/deposits/{deposit_id}")
        if isinstance(data, list):
            if not data:
                raise PawaPayError(f"pawaPay has no deposit {deposit_id}")
            data = data[0]
        if not isinstance(data, dict):
            raise PawaPayError("pawaPay status response is malformed", body=str(data))
        return data

    def get_active_configuration(self) -> List[Dict[str, Any]]:
        try:
            data = self._request("GET", "/active-conf")
        except PawaPayError as e:
            log.warning(f"Could not load active configuration: {e}")
            return []
        return data.get("correspondents", []) if isinstance(data, dict) else []

    def predict_correspondent(self, msisdn: str) -> Optional[str]:
        try:
            data = self._request("POST", "/predict-correspondent", {"msisdn": msisdn})
        except PawaPayError as e:
            log.warning(f"Correspondent prediction failed for {msisdn}: {e}")
            return None
        return data.get("correspondent") if isinstance(data, dict) else None


def create_pawapay_client() -> PawaPayClient:
    api_token = os.getenv("PAWAPAY_API_TOKEN")
    if not api_token:
        raise RuntimeError("PAWAPAY_API_TOKEN must be set in environment variables.")
    environment = os.getenv("PAWAPAY_ENVIRONMENT", "sandbox")
    default_url = PAWAPAY_PRODUCTION_URL if environment == "production" else PAWAPAY_SANDBOX_URL
    return PawaPayClient(api_token=api_token, base_url=os.getenv("PAWAPAY_BASE_URL", default_url))
