"""
Bearer-token / session-cookie validation OR dev-mode bypass. Controlled by FF_USE_AUTH flag.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from .config import Settings
from .flags import FeatureFlags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str
    email: str = ""


# Returned when FF_USE_AUTH=false
DEV_USER = AuthenticatedUser(user_id="dev-user", email="dev@local")


class Authenticator:
    """Resolves the caller from an Authorization header or session cookie."""

    def __init__(self, settings: Settings, flags: FeatureFlags):
        self._secret = settings.auth_secret
        self._algorithm = settings.auth_algorithm
        self._ttl = timedelta(minutes=settings.auth_token_ttl_minutes)
        self.cookie_name = settings.auth_cookie_name
        self.enabled = flags.use_auth

    def issue_token(self, user_id: str, email: str = "") -> str:
        """Sign a token for a user. Used by operators and tests; login lives elsewhere."""
        expire = datetime.now(timezone.utc) + self._ttl
        payload = {"sub": user_id, "email": email, "exp": expire}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_token(self, token: str) -> AuthenticatedUser:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        user_id = payload.get("sub") or ""
        if not user_id:
            raise JWTError("Token missing sub claim")
        return AuthenticatedUser(user_id=user_id, email=payload.get("email") or "")

    def authenticate(self, authorization: str = "", cookie_token: str = "") -> AuthenticatedUser:
        """
        Resolve the current user. Raises PermissionError when there is no valid caller.
        If FF_USE_AUTH is false, returns the dev user.
        """
        if not self.enabled:
            return DEV_USER

        token = ""
        if authorization:
            scheme, _, token = authorization.partition(" ")
            if scheme.lower() != "bearer" or not token:
                raise PermissionError("Invalid Authorization header. Use: Bearer <token>")
        elif cookie_token:
            token = cookie_token

        if not token:
            raise PermissionError("Missing credentials")

        try:
            return self.verify_token(token)
        except JWTError as e:
            raise PermissionError(f"Invalid token: {e}")

    def identify(self, authorization: str = "", cookie_token: str = "") -> Optional[AuthenticatedUser]:
        """Like authenticate(), but anonymous callers come back as None."""
        try:
            return self.authenticate(authorization, cookie_token)
        except PermissionError as e:
            if authorization or cookie_token:
                logger.debug("Rejected credentials: %s", e)
            return None
