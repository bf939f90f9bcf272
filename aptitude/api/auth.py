from typing import Optional
from aptitude.core.exceptions import AuthenticationError
from aptitude.core.http import ApiClient, unwrap

class AuthAPI:
    def __init__(self, api: ApiClient):
        self.api = api

    def login(self, email: str, password: str) -> dict:
        body = self.api.post("/auth/login", {"email": email, "password": password})
        data = unwrap(body) or {}
        token = data.get("access_token") or data.get("accessToken") or data.get("token")
        if not token:
            raise AuthenticationError("Login response carried no token", data)
        self.api.session.login(token, data.get("user"))
        return data

    def register(self, email: str, password: str, first_name: str, last_name: str, department: Optional[str] = None) -> dict:
        payload = {"email": email, "password": password, "firstName": first_name, "lastName": last_name}
        if department:
            payload["department"] = department
        return unwrap(self.api.post("/auth/register", payload))

    def logout(self) -> None:
        if not self.api.session.is_authenticated:
            return
        try:
            self.api.post("/auth/logout", {})
        finally:
            self.api.session.logout()

    def refresh(self) -> str:
        data = unwrap(self.api.post("/auth/refresh", {})) or {}
        token = data.get("access_token") or data.get("accessToken") or data.get("token")
        if not token:
            raise AuthenticationError("Refresh response carried no token", data)
        self.api.session.login(token, self.api.session.user)
        return token
