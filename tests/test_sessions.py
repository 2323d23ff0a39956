"""Tests for the session manager."""

import pytest

from laundry_auth.auth.models import Account
from laundry_auth.auth.sessions import SessionManager
from laundry_auth.core.exceptions import (
    FingerprintMismatchError,
    SessionExpiredError,
    SessionNotFoundError,
)
from laundry_auth.testing.utils import MutableClock


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def manager(clock):
    return SessionManager(max_sessions=3, ttl_hours=24, clock=clock)


@pytest.fixture
def account():
    return Account(username="owner", hashed_password="x")


class TestSessionCreation:
    """Tests for creating sessions."""

    def test_session_id_is_random_hex(self, manager, account):
        """Test ids are 256-bit hex strings and unique."""
        first = manager.create(account, "fp")
        second = manager.create(account, "fp")

        assert len(first) == 64
        int(first, 16)
        assert first != second

    def test_records_provenance(self, manager, account, clock):
        """Test the session stores device and origin metadata."""
        manager.create(account, "fp", "10.0.0.5", "Mozilla/5.0")

        session = account.sessions[0]
        assert session.device_fingerprint == "fp"
        assert session.ip_address == "10.0.0.5"
        assert session.user_agent == "Mozilla/5.0"
        assert session.created_at == session.last_activity == clock()

    def test_fourth_session_keeps_three_most_recent(self, manager, account, clock):
        """Test the cap keeps the two most recently active plus the new one."""
        ids = []
        for _ in range(3):
            ids.append(manager.create(account, "fp"))
            clock.advance(minutes=1)
        # Make the first session the most recently active
        manager.assert_valid(account, ids[0], "fp")
        clock.advance(minutes=1)

        new_id = manager.create(account, "fp")

        active = {s.session_id for s in account.active_sessions}
        assert active == {ids[0], ids[2], new_id}

    def test_new_session_survives_with_frozen_clock(self, manager, account):
        """Test the new session is kept even when all timestamps are equal."""
        for _ in range(3):
            manager.create(account, "fp")
        new_id = manager.create(account, "fp")

        assert len(account.active_sessions) == 3
        assert new_id in {s.session_id for s in account.active_sessions}


class TestSessionValidation:
    """Tests for validating sessions."""

    def test_valid_session_refreshes_activity(self, manager, account, clock):
        """Test validation moves last activity forward."""
        session_id = manager.create(account, "fp")
        clock.advance(hours=1)

        assert manager.validate(account, session_id, "fp") is True
        assert account.sessions[0].last_activity == clock()

    def test_unknown_session(self, manager, account):
        """Test an unknown id fails."""
        with pytest.raises(SessionNotFoundError):
            manager.assert_valid(account, "nope", "fp")

    def test_idle_session_expires(self, manager, account, clock):
        """Test a session idle for 24 hours is deactivated."""
        session_id = manager.create(account, "fp")
        clock.advance(hours=24)

        with pytest.raises(SessionExpiredError):
            manager.assert_valid(account, session_id, "fp")
        assert account.sessions[0].is_active is False

    def test_activity_extends_session(self, manager, account, clock):
        """Test expiry is measured from last activity, not creation."""
        session_id = manager.create(account, "fp")
        clock.advance(hours=20)
        manager.assert_valid(account, session_id, "fp")
        clock.advance(hours=20)

        assert manager.validate(account, session_id, "fp") is True

    def test_fingerprint_mismatch_is_terminal(self, manager, account):
        """Test a wrong device kills the session for good."""
        session_id = manager.create(account, "fp-original")

        with pytest.raises(FingerprintMismatchError):
            manager.assert_valid(account, session_id, "fp-other")

        assert account.sessions[0].is_active is False
        assert manager.validate(account, session_id, "fp-original") is False

    def test_validate_returns_false_on_failure(self, manager, account):
        """Test the boolean form reports failures."""
        assert manager.validate(account, "missing", "fp") is False


class TestSessionRevocation:
    """Tests for revoking sessions."""

    def test_revoke_single(self, manager, account):
        """Test revoking one session leaves the others active."""
        keep = manager.create(account, "fp")
        drop = manager.create(account, "fp")

        assert manager.revoke(account, drop) is True
        assert manager.revoke(account, drop) is False
        assert [s.session_id for s in account.active_sessions] == [keep]

    def test_revoke_all(self, manager, account):
        """Test revoking every session returns the count."""
        manager.create(account, "fp")
        manager.create(account, "fp")

        assert manager.revoke_all(account) == 2
        assert account.active_sessions == []
