"""Session Manager: device-bound login sessions embedded in an account."""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from laundry_auth.auth.models import Account, Session, utc_now
from laundry_auth.core.exceptions import (
    FingerprintMismatchError,
    SessionError,
    SessionExpiredError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)


def _same(a: str, b: str) -> bool:
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


class SessionManager:
    """Creates, validates and revokes sessions on an in-memory account.

    Validation failures are terminal: an expired or fingerprint-mismatched
    session is deactivated as a side effect of the check, so the caller
    must persist the account whether or not validation succeeded.
    """

    def __init__(
        self,
        max_sessions: int = 3,
        ttl_hours: int = 24,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_sessions = max_sessions
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock

    def create(
        self,
        account: Account,
        fingerprint: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Start a new session, evicting the least recently active ones.

        Returns:
            The new session id (256 random bits, hex encoded)
        """
        keep = sorted(
            account.active_sessions, key=lambda s: s.last_activity, reverse=True
        )[: self.max_sessions - 1]
        now = self.clock()
        session = Session(
            session_id=secrets.token_hex(32),
            device_fingerprint=fingerprint,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            last_activity=now,
        )
        account.sessions = keep + [session]
        return session.session_id

    def _find_active(self, account: Account, session_id: str) -> Session | None:
        for session in account.sessions:
            if session.is_active and _same(session.session_id, session_id):
                return session
        return None

    def assert_valid(self, account: Account, session_id: str, fingerprint: str) -> Session:
        """Validate a session and refresh its activity time.

        Raises:
            SessionNotFoundError: No active session with this id
            SessionExpiredError: Idle for longer than the TTL (deactivated)
            FingerprintMismatchError: Presented from another device (deactivated)
        """
        session = self._find_active(account, session_id)
        if session is None:
            raise SessionNotFoundError()

        now = self.clock()
        if now - session.last_activity >= self.ttl:
            session.is_active = False
            raise SessionExpiredError()

        if not _same(session.device_fingerprint, fingerprint):
            session.is_active = False
            raise FingerprintMismatchError()

        session.last_activity = now
        return session

    def validate(self, account: Account, session_id: str, fingerprint: str) -> bool:
        """Boolean form of ``assert_valid``. False means "require re-login"."""
        try:
            self.assert_valid(account, session_id, fingerprint)
        except SessionError as e:
            logger.info("Session rejected for %s: %s", account.username, e.message)
            return False
        return True

    def revoke(self, account: Account, session_id: str) -> bool:
        """Deactivate one session. Returns True if it was active."""
        session = self._find_active(account, session_id)
        if session is None:
            return False
        session.is_active = False
        return True

    def revoke_all(self, account: Account) -> int:
        """Deactivate every active session. Returns how many were revoked."""
        revoked = 0
        for session in account.active_sessions:
            session.is_active = False
            revoked += 1
        return revoked
