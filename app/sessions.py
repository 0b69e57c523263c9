from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from starlette.requests import Request
from starlette.responses import Response

COOKIE_NAME = "sessionid"
ALGORITHM = "HS256"


class SessionManager:
    """Signs the logged-in user id into a cookie.

    Built once when the app starts and shared through ``app.state``; holds no
    per-request state.
    """

    def __init__(self, secret_key: str, max_age_seconds: int = 14 * 24 * 3600, secure: bool = False) -> None:
        if not secret_key:
            raise ValueError("a session secret key is required")
        self._secret_key = secret_key
        self.max_age_seconds = max_age_seconds
        self.secure = secure

    @classmethod
    def from_env(cls) -> "SessionManager":
        secret = os.getenv("SECRET_KEY", "")
        if not secret:
            raise RuntimeError("No SECRET_KEY variable set!")
        max_age = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(14 * 24 * 3600)))
        secure = os.getenv("SESSION_COOKIE_SECURE", "false").lower() in {"1", "true", "yes", "on"}
        return cls(secret, max_age_seconds=max_age, secure=secure)

    def encode(self, user_id: int) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.max_age_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def decode(self, token: str) -> Optional[int]:
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
            return int(payload["sub"])
        except (JWTError, KeyError, ValueError):
            # tampered, expired or malformed cookies read as logged out
            return None

    def load_user_id(self, request: Request) -> Optional[int]:
        token = request.cookies.get(COOKIE_NAME)
        if not token:
            return None
        return self.decode(token)

    def save(self, response: Response, user_id: int) -> None:
        response.set_cookie(
            COOKIE_NAME,
            self.encode(user_id),
            max_age=self.max_age_seconds,
            httponly=True,
            samesite="lax",
            secure=self.secure,
        )

    def clear(self, response: Response) -> None:
        response.delete_cookie(COOKIE_NAME)
