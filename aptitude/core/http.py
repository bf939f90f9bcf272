"""
HTTP transport shared by every API wrapper.
"""
import logging
from typing import Any, Optional

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from aptitude.core.auth import SessionContext
from aptitude.core.config import Settings, get_settings
from aptitude.core.exceptions import (
    APIError, AuthenticationError, NetworkError, NotFoundError,
)

logger = logging.getLogger(__name__)

def error_message(response: httpx.Response) -> str:
    """Best human-readable message carried by an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if body.get("message"):
            message = body["message"]
            return ", ".join(message) if isinstance(message, list) else str(message)
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("detail"):
            return str(body["detail"])
        if isinstance(error, str):
            return error
    return response.reason_phrase or f"HTTP {response.status_code}"

def unwrap(body: Any) -> Any:
    """Strip the ``{message, data}`` envelope when present."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body

class ApiClient:
    """
    Thin wrapper over ``httpx.Client``.

    Attaches the bearer token from the session context, maps failures onto the
    client's exception taxonomy and invalidates the session on 401.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[SessionContext] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.settings = settings or get_settings()
        self.session = session or SessionContext()
        if not self.session.is_authenticated and self.settings.AUTH_TOKEN:
            self.session.login(self.settings.AUTH_TOKEN.get_secret_value())
        self._owns_client = client is None
        self.client = client or httpx.Client(
            base_url=self.settings.API_BASE_URL,
            timeout=self.settings.API_TIMEOUT,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def request(self, method: str, path: str, *, json: Any = None, params: Optional[dict] = None) -> Any:
        """Send one request and return the decoded body (envelope included)."""
        try:
            response = self.client.request(
                method, path, json=json, params=params, headers=self.session.authorization_header()
            )
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out: {e}")
            raise NetworkError(f"Request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise NetworkError(f"Could not reach the server: {e}") from e

        if response.is_success:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return response.text

        message = error_message(response)
        payload = self._payload(response)
        logger.warning(f"{method} {path} -> {response.status_code}: {message}")
        if response.status_code == 401:
            self.session.invalidate()
            raise AuthenticationError(message, payload)
        if response.status_code == 404:
            raise NotFoundError(message, payload)
        raise APIError(message, response.status_code, payload)

    def get(self, path: str, params: Optional[dict] = None) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.RETRY_ATTEMPTS),
            wait=wait_fixed(self.settings.RETRY_WAIT_SECONDS),
            retry=retry_if_exception_type(NetworkError),
            reraise=True,
        )
        return retrying(self.request, "GET", path, params=params)

    def post(self, path: str, json: Any = None) -> Any:
        return self.request("POST", path, json=json)

    def put(self, path: str, json: Any = None) -> Any:
        return self.request("PUT", path, json=json)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    @staticmethod
    def _payload(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {"body": body}
