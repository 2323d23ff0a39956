"""Credential Store: account creation, lookup and password hashing."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from passlib.context import CryptContext
from pydantic import ValidationError

from laundry_auth.auth.models import Account, Role, utc_now
from laundry_auth.auth.store import AccountStore
from laundry_auth.core.client import S3ClientProtocol
from laundry_auth.core.exceptions import InputValidationError, PasswordTooShortError

logger = logging.getLogger(__name__)


def _truncate_for_bcrypt(password: str) -> str:
    """Cut a password to bcrypt's 72-byte limit at a UTF-8 boundary."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) <= 72:
        return password
    # Drops a multi-byte character split by the cut
    return password_bytes[:72].decode("utf-8", errors="ignore")


class CredentialStore:
    """Owns password hashing and account identity records.

    Hashing and verification are deliberately slow and run in a
    worker thread so they never stall the event loop.
    """

    def __init__(
        self,
        store: AccountStore,
        bcrypt_rounds: int = 12,
        password_min_length: int = 8,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the credential store.

        Args:
            store: Persistence for account documents
            bcrypt_rounds: bcrypt work factor
            password_min_length: Minimum accepted password length
            clock: Source of the current UTC time
        """
        self.store = store
        self.password_min_length = password_min_length
        self.clock = clock
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=bcrypt_rounds,
        )
        # Verified against on unknown logins so a miss costs the same as a hit
        self._dummy_hash = self.pwd_context.hash("dummy_password_for_timing")

    def hash_password(self, password: str) -> str:
        """Hash a password with a fresh salt."""
        return self.pwd_context.hash(_truncate_for_bcrypt(password))

    def check_password_length(self, password: str, field: str = "password") -> None:
        """Raise PasswordTooShortError if ``password`` is under the minimum."""
        if len(password) < self.password_min_length:
            raise PasswordTooShortError(self.password_min_length, field=field)

    async def verify_password(self, account: Account, candidate: str) -> bool:
        """Check ``candidate`` against the account's stored hash.

        Uses the hash scheme's own constant-time verify. The candidate is
        never logged.
        """
        return await asyncio.to_thread(
            self.pwd_context.verify,
            _truncate_for_bcrypt(candidate),
            account.hashed_password,
        )

    async def burn_verification(self, candidate: str) -> None:
        """Spend one verification on the dummy hash (unknown account path)."""
        await asyncio.to_thread(
            self.pwd_context.verify, _truncate_for_bcrypt(candidate), self._dummy_hash
        )

    async def build_account(
        self,
        username: str,
        password: str,
        email: str | None = None,
        role: Role = Role.ADMIN,
    ) -> Account:
        """Validate input and build an unsaved account with a hashed password.

        Raises:
            InputValidationError: If the username or email is malformed
            PasswordTooShortError: If the password is too short
        """
        if not username or not username.strip():
            raise InputValidationError("Username and password are required", "username")
        if not password:
            raise InputValidationError("Username and password are required", "password")
        self.check_password_length(password)

        hashed = await asyncio.to_thread(self.hash_password, password)
        now = self.clock()
        try:
            account = Account(
                username=username,
                email=email,
                hashed_password=hashed,
                role=role,
                created_at=now,
                updated_at=now,
            )
        except ValidationError as e:
            error = e.errors()[0]
            field = str(error["loc"][0]) if error["loc"] else None
            raise InputValidationError(f"Invalid {field}: {error['msg']}", field) from e

        account.security_settings.last_password_change = now
        return account

    async def create_account(
        self,
        s3_client: S3ClientProtocol,
        username: str,
        password: str,
        email: str | None = None,
        role: Role = Role.ADMIN,
    ) -> Account:
        """Create and persist a new account.

        Raises:
            InputValidationError: If input is malformed
            DuplicateKeyError: If the username or email exists
        """
        account = await self.build_account(username, password, email, role)
        account = await self.store.insert(s3_client, account)
        logger.info("Created %s account %s", account.role.value, account.username)
        return account

    async def find_by_login(
        self, s3_client: S3ClientProtocol, identifier: str
    ) -> Account | None:
        """Find an active account by username or email."""
        return await self.store.find_by_login(s3_client, identifier.strip())

    async def change_password(self, account: Account, new_password: str) -> Account:
        """Re-hash the account's password in place.

        The caller must already have verified the current password and is
        responsible for saving the account.

        Raises:
            PasswordTooShortError: If the new password is too short
        """
        self.check_password_length(new_password, field="new_password")
        account.hashed_password = await asyncio.to_thread(
            self.hash_password, new_password
        )
        account.security_settings.last_password_change = self.clock()
        account.security_settings.password_change_required = False
        return account
