"""
Tests for palimpsest/core/access.py
Route classification, the decision table, and row-level read/write checks.
"""

from types import SimpleNamespace

import pytest

from palimpsest.core.access import (
    AccessGate,
    Outcome,
    RouteClass,
    can_read,
    can_write,
    ensure_readable,
    ensure_writable,
)
from palimpsest.core.auth import AuthenticatedUser
from palimpsest.core.errors import Unauthenticated, Unauthorized

SHARE_ID = "3f2b8c1e-4a5d-4e6f-9a7b-1c2d3e4f5a6b"
ALICE = AuthenticatedUser(user_id="alice")


@pytest.fixture
def gate():
    return AccessGate(api_prefix="/api", app_root="/app", home_path="/app", login_path="/login")


# =============================================================================
# Classification
# =============================================================================

class TestClassify:
    def test_api_prefix(self, gate):
        assert gate.classify("/api/documents") is RouteClass.API

    def test_auth_pages(self, gate):
        assert gate.classify("/login") is RouteClass.AUTH_PAGE
        assert gate.classify("/register") is RouteClass.AUTH_PAGE

    def test_public_share_needs_uuid_v4(self, gate):
        assert gate.classify(f"/user/{SHARE_ID}/public") is RouteClass.PUBLIC_SHARE
        assert gate.classify(f"/app/user/{SHARE_ID}/public") is RouteClass.PUBLIC_SHARE
        # Version nibble is 1, not 4
        assert gate.classify("/user/3f2b8c1e-4a5d-1e6f-9a7b-1c2d3e4f5a6b/public") is RouteClass.OTHER
        assert gate.classify("/user/not-a-uuid/public") is RouteClass.OTHER

    def test_app_root(self, gate):
        assert gate.classify("/app/documents") is RouteClass.APP

    def test_other(self, gate):
        assert gate.classify("/elsewhere") is RouteClass.OTHER


# =============================================================================
# Decision table
# =============================================================================

class TestDecisions:
    def test_api_always_allowed(self, gate):
        """Handlers do their own checks on API routes."""
        assert gate.authorize(None, "/api/documents").allowed
        assert gate.authorize(ALICE, "/api/documents").allowed

    def test_signed_in_caller_on_login_goes_home(self, gate):
        decision = gate.authorize(ALICE, "/login")
        assert decision.outcome is Outcome.REDIRECT
        assert decision.target == "/app"

    def test_anonymous_caller_may_log_in(self, gate):
        assert gate.authorize(None, "/login").allowed
        assert gate.authorize(None, "/register").allowed

    def test_public_share_open_to_everyone(self, gate):
        assert gate.authorize(None, f"/user/{SHARE_ID}/public").allowed
        assert gate.authorize(ALICE, f"/user/{SHARE_ID}/public").allowed

    def test_app_requires_sign_in(self, gate):
        decision = gate.authorize(None, "/app/documents")
        assert decision.outcome is Outcome.REDIRECT
        assert decision.target == "/login"
        assert gate.authorize(ALICE, "/app/documents").allowed

    def test_unmatched_route(self, gate):
        decision = gate.authorize(ALICE, "/elsewhere")
        assert decision.outcome is Outcome.REDIRECT
        assert decision.target == "/app"
        assert gate.authorize(None, "/elsewhere").allowed

    def test_table_covers_every_case(self):
        for route_class in RouteClass:
            for signed_in in (True, False):
                assert (route_class, signed_in) in AccessGate.TABLE


# =============================================================================
# Row-level checks
# =============================================================================

class TestRowChecks:
    private = SimpleNamespace(owner_id="alice", visible=False)
    public = SimpleNamespace(owner_id="alice", visible=True)

    def test_read_rules(self):
        assert can_read("alice", self.private)
        assert not can_read("bob", self.private)
        assert not can_read(None, self.private)
        assert can_read(None, self.public)
        assert can_read("bob", self.public)

    def test_write_needs_ownership(self):
        assert can_write("alice", self.public)
        assert not can_write("bob", self.public)
        assert not can_write(None, self.public)

    def test_ensure_readable_errors(self):
        with pytest.raises(Unauthenticated):
            ensure_readable(None, self.private)
        with pytest.raises(Unauthorized):
            ensure_readable("bob", self.private)
        ensure_readable("alice", self.private)

    def test_ensure_writable_errors(self):
        with pytest.raises(Unauthenticated):
            ensure_writable(None, self.public)
        with pytest.raises(Unauthorized):
            ensure_writable("bob", self.public)
