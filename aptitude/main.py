"""
Client entry point: wires settings, logging, transport and the API wrappers.
"""
import logging
from typing import Optional

import httpx

from aptitude.api.admin import AdminAPI
from aptitude.api.auth import AuthAPI
from aptitude.api.user import UserAPI
from aptitude.core.auth import SessionContext
from aptitude.core.config import Settings, get_settings
from aptitude.core.http import ApiClient
from aptitude.core.logging import configure_logging
from aptitude.services.session import TestAttemptSession

logger = logging.getLogger(__name__)

class Platform:
    """Everything a caller needs, sharing one transport and one session context."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[SessionContext] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.settings = settings or get_settings()
        self.api = ApiClient(self.settings, session or SessionContext(), client)
        self.auth = AuthAPI(self.api)
        self.user = UserAPI(self.api)
        self.admin = AdminAPI(self.api)
        self.api.session.on_invalidated(self._signed_out)

    @property
    def session(self) -> SessionContext:
        return self.api.session

    def test_session(self) -> TestAttemptSession:
        return TestAttemptSession(self.user, self.settings)

    def close(self) -> None:
        self.api.close()

    def __enter__(self) -> "Platform":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _signed_out(self, session: SessionContext) -> None:
        logger.warning("Session rejected by the server; sign in again")

def create_platform(settings: Optional[Settings] = None, client: Optional[httpx.Client] = None) -> Platform:
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info(f"Starting {settings.APP_NAME} against {settings.API_BASE_URL}")
    return Platform(settings, client=client)
