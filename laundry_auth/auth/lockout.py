"""Lockout Tracker: per-account consecutive failure counting."""

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta

from laundry_auth.auth.models import Account, utc_now

logger = logging.getLogger(__name__)


class LockoutTracker:
    """Locks an account for a fixed period after repeated failed logins.

    All methods mutate the in-memory account; the caller persists it.
    Failure state is committed even when the surrounding login fails, so
    callers must save after ``record_failure`` before raising.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        lockout_minutes: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_attempts = max_attempts
        self.lockout_duration = timedelta(minutes=lockout_minutes)
        self.clock = clock

    def is_locked(self, account: Account) -> bool:
        """True iff a lockout expiry is set and still in the future."""
        until = account.login_attempts.lockout_until
        return until is not None and until > self.clock()

    def remaining_minutes(self, account: Account) -> int:
        """Whole minutes (rounded up) until the lockout lifts, 0 if unlocked."""
        until = account.login_attempts.lockout_until
        if until is None:
            return 0
        seconds = (until - self.clock()).total_seconds()
        return max(0, math.ceil(seconds / 60))

    def record_failure(self, account: Account) -> bool:
        """Count one failed attempt.

        Returns:
            True if this failure locked the account
        """
        now = self.clock()
        state = account.login_attempts

        if state.lockout_until is not None and state.lockout_until <= now:
            # Previous lock has expired: restart instead of stacking on it
            state.lockout_until = None
            state.count = 1
            state.last_attempt = now
            return False

        state.count += 1
        state.last_attempt = now
        if state.count >= self.max_attempts and not self.is_locked(account):
            state.lockout_until = now + self.lockout_duration
            logger.warning(
                "Account %s locked after %d failed attempts",
                account.username,
                state.count,
            )
            return True
        return False

    def record_success(self, account: Account) -> None:
        """Clear all failure state."""
        state = account.login_attempts
        state.count = 0
        state.last_attempt = None
        state.lockout_until = None
