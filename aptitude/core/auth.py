from pydantic import BaseModel
from typing import Callable, List, Optional
import jwt
import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

class TokenData(BaseModel):
    sub: Optional[str] = None
    roles: List[str] = []
    exp: Optional[int] = None

def read_token(token: str) -> TokenData:
    # The client never holds the signing secret; claims are read for identity only.
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return TokenData()
    roles = payload.get("roles") or ([payload["role"]] if payload.get("role") else [])
    sub = payload.get("sub") or payload.get("userId") or payload.get("id")
    return TokenData(sub=str(sub) if sub is not None else None, roles=roles, exp=payload.get("exp"))

class SessionContext:
    """
    Identity of the signed-in user, passed explicitly to whatever needs it.

    Initialised by ``login`` after a successful sign-in and torn down by
    ``logout`` or by the transport when the backend answers 401.
    """

    def __init__(self, token: Optional[str] = None, user: Optional[dict] = None):
        self.token: Optional[str] = None
        self.user: Optional[dict] = None
        self.claims = TokenData()
        self._listeners: List[Callable[["SessionContext"], None]] = []
        if token:
            self.login(token, user)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    @property
    def user_id(self) -> Optional[str]:
        if self.user and self.user.get("id") is not None:
            return str(self.user["id"])
        return self.claims.sub

    @property
    def roles(self) -> List[str]:
        if self.user and self.user.get("role"):
            return [self.user["role"]]
        return self.claims.roles

    @property
    def is_admin(self) -> bool:
        return "admin" in self.roles

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.claims.exp is None:
            return False
        now = now or datetime.now(timezone.utc)
        return int(now.timestamp()) >= self.claims.exp

    def login(self, token: str, user: Optional[dict] = None) -> None:
        self.token = token
        self.user = user
        self.claims = read_token(token)
        logger.info(f"Session started for user {self.user_id}")

    def logout(self) -> None:
        if not self.is_authenticated:
            return
        logger.info(f"Session ended for user {self.user_id}")
        self.token = None
        self.user = None
        self.claims = TokenData()

    def invalidate(self) -> None:
        """Drop the session after the backend rejected it and notify listeners."""
        was_authenticated = self.is_authenticated
        self.logout()
        if was_authenticated:
            for listener in list(self._listeners):
                listener(self)

    def on_invalidated(self, listener: Callable[["SessionContext"], None]) -> None:
        self._listeners.append(listener)

    def authorization_header(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}
