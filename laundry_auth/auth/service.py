"""Authentication service for laundry-auth.

Orchestrates the credential store, lockout tracker, device registry,
session manager, audit log and token codec. Every read-modify-write of an
account happens while holding that account's lock; audit entries are
recorded only after the lock is released.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from laundry_auth.auth.audit import AuditAction, AuditLog, AuditWriter
from laundry_auth.auth.credentials import CredentialStore
from laundry_auth.auth.devices import DeviceRegistry
from laundry_auth.auth.lockout import LockoutTracker
from laundry_auth.auth.models import (
    Account,
    AccountProfile,
    AuditLogEntry,
    PublicUser,
    Role,
    SessionSummary,
    utc_now,
)
from laundry_auth.auth.sessions import SessionManager
from laundry_auth.auth.store import AccountStore
from laundry_auth.auth.tokens import TokenClaims, TokenService
from laundry_auth.core.client import S3ClientProtocol
from laundry_auth.core.exceptions import (
    AccountLockedError,
    ConfigurationError,
    InputValidationError,
    InvalidCredentialsError,
    InvalidTokenError,
    SessionError,
    SessionNotFoundError,
    SetupAlreadyCompleteError,
)
from laundry_auth.core.settings import LaundryAuthSettings

logger = logging.getLogger(__name__)

UNKNOWN_DEVICE = "unknown"


@dataclass(frozen=True)
class ClientInfo:
    """Request provenance: the advisory device fingerprint and origin."""

    fingerprint: str = UNKNOWN_DEVICE
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuthResult:
    """A freshly issued bearer token and the account it belongs to."""

    token: str
    user: PublicUser


@dataclass(frozen=True)
class SetupStatus:
    setup_required: bool
    user_count: int


class AuthService:
    """Login, logout, verification, password change and first-run setup.

    Security-sensitive failures are collapsed before they leave this class:
    login problems surface as ``InvalidCredentialsError`` and any token or
    session problem as ``InvalidTokenError``, so a client cannot tell which
    check failed.
    """

    def __init__(
        self,
        settings: LaundryAuthSettings,
        store: AccountStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the auth service.

        Args:
            settings: Policy, token and storage configuration
            store: Account persistence (defaults to the configured bucket)
            clock: Source of the current UTC time
        """
        missing = [
            name
            for name, value in (
                ("SECRET_KEY", settings.secret_key),
                ("AWS_BUCKET_NAME", settings.aws_bucket_name),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(missing_fields=missing)

        self.settings = settings
        self.clock = clock
        self.store = store or AccountStore(
            settings.aws_bucket_name, settings.s3_base_path, clock=clock
        )
        self.credentials = CredentialStore(
            self.store,
            bcrypt_rounds=settings.bcrypt_rounds,
            password_min_length=settings.password_min_length,
            clock=clock,
        )
        self.lockout = LockoutTracker(
            max_attempts=settings.max_failed_logins,
            lockout_minutes=settings.lockout_minutes,
            clock=clock,
        )
        self.devices = DeviceRegistry(max_devices=settings.max_devices, clock=clock)
        self.sessions = SessionManager(
            max_sessions=settings.max_sessions,
            ttl_hours=settings.session_ttl_hours,
            clock=clock,
        )
        self.audit_log = AuditLog(limit=settings.audit_log_limit, clock=clock)
        self.audit_writer = AuditWriter(
            self.store, self.audit_log, max_queue_size=settings.audit_queue_size
        )
        self.tokens = TokenService(
            settings.secret_key,
            algorithm=settings.algorithm,
            expire_hours=settings.access_token_expire_hours,
            clock=clock,
        )

        if settings.using_default_secret:
            logger.warning(
                "Signing tokens with the default secret key; set SECRET_KEY in production"
            )

    async def _audit(
        self,
        s3_client: S3ClientProtocol,
        account: Account,
        action: str,
        client: ClientInfo,
        details: dict[str, Any] | None = None,
    ) -> None:
        await self.audit_writer.record(
            s3_client,
            account.id,
            action,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            details=details,
        )

    def _issue(self, account: Account, session_id: str) -> AuthResult:
        return AuthResult(
            token=self.tokens.create_token(account.id, session_id),
            user=PublicUser.from_account(account),
        )

    async def setup_status(self, s3_client: S3ClientProtocol) -> SetupStatus:
        """Report whether first-run setup is still possible."""
        count = await self.store.count_active(s3_client)
        return SetupStatus(setup_required=count == 0, user_count=count)

    async def setup(
        self,
        s3_client: S3ClientProtocol,
        username: str,
        password: str,
        email: str | None = None,
        client: ClientInfo = ClientInfo(),
    ) -> AuthResult:
        """Create the first administrator and log them in.

        Only allowed while no active account exists; the check and the
        insert run under the store's creation lock.

        Raises:
            SetupAlreadyCompleteError: If an active account exists
            InputValidationError: If the input is missing or malformed
        """
        async with self.store.insert_lock:
            if await self.store.count_active(s3_client) > 0:
                raise SetupAlreadyCompleteError()

            account = await self.credentials.build_account(
                username, password, email, role=Role.ADMIN
            )
            self.devices.register(account, client.fingerprint, client.user_agent)
            session_id = self.sessions.create(
                account, client.fingerprint, client.ip_address, client.user_agent
            )
            await self.store.insert_unlocked(s3_client, account)

        logger.info("Initial setup completed by %s", account.username)
        await self._audit(
            s3_client,
            account,
            AuditAction.INITIAL_SETUP,
            client,
            {"username": account.username},
        )
        return self._issue(account, session_id)

    async def create_account(
        self,
        s3_client: S3ClientProtocol,
        username: str,
        password: str,
        email: str | None = None,
        role: Role = Role.ADMIN,
        client: ClientInfo = ClientInfo(),
    ) -> PublicUser:
        """Create an account administratively, regardless of setup state."""
        account = await self.credentials.create_account(
            s3_client, username, password, email, role
        )
        await self._audit(
            s3_client,
            account,
            AuditAction.ACCOUNT_CREATED,
            client,
            {"username": account.username, "role": account.role.value},
        )
        return PublicUser.from_account(account)

    async def login(
        self,
        s3_client: S3ClientProtocol,
        identifier: str,
        password: str,
        client: ClientInfo = ClientInfo(),
    ) -> AuthResult:
        """Authenticate by username or email and open a new session.

        Raises:
            InputValidationError: If the identifier or password is missing
            InvalidCredentialsError: Unknown account or wrong password
            AccountLockedError: Too many consecutive failures
        """
        if not identifier or not identifier.strip() or not password:
            raise InputValidationError("Username and password are required")
        identifier = identifier.strip()

        found = await self.credentials.find_by_login(s3_client, identifier)
        if found is None:
            # Unknown accounts cost one hash verification like known ones
            await self.credentials.burn_verification(password)
            logger.warning("Failed login for unknown account from %s", client.ip_address)
            raise InvalidCredentialsError()

        async with self.store.lock(found.id):
            account = await self.store.get(s3_client, found.id)
            if account is None or not account.is_active:
                await self.credentials.burn_verification(password)
                raise InvalidCredentialsError()

            if self.lockout.is_locked(account):
                remaining = self.lockout.remaining_minutes(account)
                logger.warning("Login attempt on locked account %s", account.username)
                raise AccountLockedError(remaining)

            password_valid = await self.credentials.verify_password(account, password)
            if not password_valid:
                locked_now = self.lockout.record_failure(account)
                await self.store.save(s3_client, account)
            else:
                new_device = not self.devices.is_authorized(account, client.fingerprint)
                if new_device:
                    self.devices.register(account, client.fingerprint, client.user_agent)
                else:
                    self.devices.touch(account, client.fingerprint)
                self.lockout.record_success(account)
                session_id = self.sessions.create(
                    account, client.fingerprint, client.ip_address, client.user_agent
                )
                await self.store.save(s3_client, account)

        if not password_valid:
            logger.warning(
                "Failed login for %s from %s (%d consecutive)",
                account.username,
                client.ip_address,
                account.login_attempts.count,
            )
            await self._audit(
                s3_client,
                account,
                AuditAction.LOGIN_FAILED,
                client,
                {"reason": "Invalid password", "username": identifier},
            )
            if locked_now:
                await self._audit(
                    s3_client,
                    account,
                    AuditAction.ACCOUNT_LOCKED,
                    client,
                    {"lockout_minutes": self.settings.lockout_minutes},
                )
                raise AccountLockedError(self.lockout.remaining_minutes(account))
            raise InvalidCredentialsError()

        if new_device:
            await self._audit(
                s3_client,
                account,
                AuditAction.NEW_DEVICE,
                client,
                {"device_info": client.user_agent},
            )
        await self._audit(s3_client, account, AuditAction.LOGIN_SUCCESS, client)
        logger.info("Login succeeded for %s", account.username)
        return self._issue(account, session_id)

    async def _load_session(
        self,
        s3_client: S3ClientProtocol,
        claims: TokenClaims,
        client: ClientInfo,
    ) -> Account:
        """Load the token's account and validate its session.

        Must be called while holding the account lock. A session that fails
        validation is deactivated and saved before the error is raised.
        """
        account = await self.store.get(s3_client, claims.account_id)
        if account is None or not account.is_active:
            raise InvalidTokenError()
        try:
            self.sessions.assert_valid(account, claims.session_id, client.fingerprint)
        except SessionNotFoundError as e:
            raise InvalidTokenError() from e
        except SessionError as e:
            logger.warning("Session invalidated for %s: %s", account.username, e.message)
            await self.store.save(s3_client, account)
            raise InvalidTokenError() from e
        return account

    async def _authenticate(
        self, s3_client: S3ClientProtocol, token: str, client: ClientInfo
    ) -> tuple[Account, TokenClaims]:
        """Validate a bearer token and persist the refreshed session activity."""
        claims = self.tokens.decode(token)
        async with self.store.lock(claims.account_id):
            account = await self._load_session(s3_client, claims, client)
            await self.store.save(s3_client, account)
        return account, claims

    async def verify(
        self, s3_client: S3ClientProtocol, token: str, client: ClientInfo = ClientInfo()
    ) -> PublicUser:
        """Return the token holder's public fields if the token and session are valid.

        Raises:
            InvalidTokenError: For any kind of token or session failure
        """
        account, _ = await self._authenticate(s3_client, token, client)
        return PublicUser.from_account(account)

    async def logout(
        self, s3_client: S3ClientProtocol, token: str, client: ClientInfo = ClientInfo()
    ) -> None:
        """Revoke the token's session. An already invalid token is not an error."""
        try:
            claims = self.tokens.decode(token)
            async with self.store.lock(claims.account_id):
                account = await self._load_session(s3_client, claims, client)
                self.sessions.revoke(account, claims.session_id)
                await self.store.save(s3_client, account)
        except InvalidTokenError:
            logger.info("Logout with an invalid token from %s", client.ip_address)
            return

        logger.info("Logout for %s", account.username)
        await self._audit(s3_client, account, AuditAction.LOGOUT, client)

    async def logout_all(
        self, s3_client: S3ClientProtocol, token: str, client: ClientInfo = ClientInfo()
    ) -> int:
        """Revoke every active session of the token's account.

        Returns:
            Number of sessions revoked, including the caller's own
        """
        claims = self.tokens.decode(token)
        async with self.store.lock(claims.account_id):
            account = await self._load_session(s3_client, claims, client)
            revoked = self.sessions.revoke_all(account)
            await self.store.save(s3_client, account)

        logger.info("Revoked %d sessions for %s", revoked, account.username)
        await self._audit(
            s3_client, account, AuditAction.LOGOUT_ALL, client, {"sessions_revoked": revoked}
        )
        return revoked

    async def change_password(
        self,
        s3_client: S3ClientProtocol,
        token: str,
        current_password: str,
        new_password: str,
        client: ClientInfo = ClientInfo(),
    ) -> None:
        """Replace the password after re-checking the current one.

        Other sessions stay active.

        Raises:
            InputValidationError: If either password is missing
            InvalidTokenError: If the token or session is invalid
            InvalidCredentialsError: If the current password is wrong
            PasswordTooShortError: If the new password is too short
        """
        if not current_password or not new_password:
            raise InputValidationError(
                "Current password and new password are required"
            )

        claims = self.tokens.decode(token)
        async with self.store.lock(claims.account_id):
            account = await self._load_session(s3_client, claims, client)
            current_valid = await self.credentials.verify_password(
                account, current_password
            )
            if current_valid:
                await self.credentials.change_password(account, new_password)
            await self.store.save(s3_client, account)

        if not current_valid:
            logger.warning("Password change rejected for %s", account.username)
            await self._audit(
                s3_client,
                account,
                AuditAction.PASSWORD_CHANGE_FAILED,
                client,
                {"reason": "Current password is incorrect"},
            )
            raise InvalidCredentialsError("Current password is incorrect")

        logger.info("Password changed for %s", account.username)
        await self._audit(s3_client, account, AuditAction.PASSWORD_CHANGED, client)

    async def profile(
        self, s3_client: S3ClientProtocol, token: str, client: ClientInfo = ClientInfo()
    ) -> AccountProfile:
        """Public fields plus last login, device and session counts."""
        account, _ = await self._authenticate(s3_client, token, client)
        return AccountProfile.from_account(account)

    async def list_sessions(
        self, s3_client: S3ClientProtocol, token: str, client: ClientInfo = ClientInfo()
    ) -> list[SessionSummary]:
        """Active sessions of the caller, most recently active first."""
        account, claims = await self._authenticate(s3_client, token, client)
        active = sorted(
            account.active_sessions, key=lambda s: s.last_activity, reverse=True
        )
        return [
            SessionSummary.from_session(s, current=s.session_id == claims.session_id)
            for s in active
        ]

    async def audit_history(
        self,
        s3_client: S3ClientProtocol,
        token: str,
        limit: int = 50,
        client: ClientInfo = ClientInfo(),
    ) -> list[AuditLogEntry]:
        """The caller's most recent audit entries, newest first."""
        if not 1 <= limit <= self.settings.audit_log_limit:
            raise InputValidationError(
                f"limit must be between 1 and {self.settings.audit_log_limit}", "limit"
            )
        # Apply queued entries first so the history is current
        await self.audit_writer.flush()
        account, _ = await self._authenticate(s3_client, token, client)
        return list(reversed(account.audit_log[-limit:]))
