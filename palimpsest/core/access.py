"""
Access gate.

Route-level: every request path is classified into a RouteClass and the
decision is read from an explicit table keyed by (route class, signed in).
Row-level: read needs ownership or a visible document, write needs ownership.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from .auth import AuthenticatedUser
from .errors import Unauthenticated, Unauthorized

UUID_V4 = r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}"
PUBLIC_SHARE_PATTERN = re.compile(rf"/[^/]+/{UUID_V4}/public(?:/|$)", re.IGNORECASE)


class RouteClass(str, Enum):
    API = "api"
    AUTH_PAGE = "auth_page"
    PUBLIC_SHARE = "public_share"
    APP = "app"
    OTHER = "other"


class Outcome(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"
    DENY = "deny"


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    target: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW


ALLOW = Decision(Outcome.ALLOW)
REDIRECT_HOME = "home"
REDIRECT_LOGIN = "login"


class AccessGate:
    """Decides whether a request may reach its handler."""

    # (route class, signed in) → decision. Redirect targets are symbolic and
    # resolved against the configured home/login paths.
    TABLE: dict[tuple[RouteClass, bool], Decision] = {
        (RouteClass.API, True): ALLOW,
        (RouteClass.API, False): ALLOW,
        (RouteClass.AUTH_PAGE, True): Decision(Outcome.REDIRECT, target=REDIRECT_HOME),
        (RouteClass.AUTH_PAGE, False): ALLOW,
        (RouteClass.PUBLIC_SHARE, True): ALLOW,
        (RouteClass.PUBLIC_SHARE, False): ALLOW,
        (RouteClass.APP, True): ALLOW,
        (RouteClass.APP, False): Decision(Outcome.REDIRECT, target=REDIRECT_LOGIN),
        # Outside the application root. Anonymous callers fall through allowed.
        (RouteClass.OTHER, True): Decision(Outcome.REDIRECT, target=REDIRECT_HOME),
        (RouteClass.OTHER, False): ALLOW,
    }

    def __init__(
        self,
        api_prefix: str = "/api",
        app_root: str = "/",
        home_path: str = "/",
        login_path: str = "/login",
        register_path: str = "/register",
    ):
        self.api_prefix = api_prefix
        self.app_root = app_root
        self.home_path = home_path
        self.login_path = login_path
        self.register_path = register_path

    def classify(self, path: str) -> RouteClass:
        if path.startswith(self.api_prefix):
            return RouteClass.API
        if path.startswith(self.login_path) or path.startswith(self.register_path):
            return RouteClass.AUTH_PAGE
        if PUBLIC_SHARE_PATTERN.search(path):
            return RouteClass.PUBLIC_SHARE
        if path.startswith(self.app_root):
            return RouteClass.APP
        return RouteClass.OTHER

    def authorize(self, caller: Optional[AuthenticatedUser], path: str) -> Decision:
        decision = self.TABLE[(self.classify(path), caller is not None)]
        if decision.outcome is Outcome.REDIRECT:
            target = self.home_path if decision.target == REDIRECT_HOME else self.login_path
            return Decision(Outcome.REDIRECT, target=target)
        return decision


# ── Row-level checks ─────────────────────────────────────────────────

class OwnedRow(Protocol):
    owner_id: str
    visible: bool


def can_read(caller_id: Optional[str], row: OwnedRow) -> bool:
    return bool(row.visible) or (caller_id is not None and caller_id == row.owner_id)


def can_write(caller_id: Optional[str], row) -> bool:
    return caller_id is not None and caller_id == row.owner_id


def ensure_readable(caller_id: Optional[str], row: OwnedRow) -> None:
    if can_read(caller_id, row):
        return
    if caller_id is None:
        raise Unauthenticated()
    raise Unauthorized()


def ensure_writable(caller_id: Optional[str], row) -> None:
    if caller_id is None:
        raise Unauthenticated()
    if not can_write(caller_id, row):
        raise Unauthorized()
