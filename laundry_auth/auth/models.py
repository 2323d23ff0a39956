"""Account document and its embedded security records.

An Account is persisted as a single JSON document; login attempt state,
trusted devices, sessions and the audit trail are embedded lists on that
document and are capped at write time.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Roles available in the single-tenant shop."""

    ADMIN = "admin"
    MANAGER = "manager"
    OPERATOR = "operator"


class LoginAttemptState(BaseModel):
    """Consecutive failed login tracking for one account."""

    count: int = 0
    last_attempt: datetime | None = None
    lockout_until: datetime | None = None


class DeviceFingerprint(BaseModel):
    """A device the account has logged in from."""

    fingerprint: str
    device_info: str | None = None
    last_used: datetime = Field(default_factory=utc_now)
    is_active: bool = True


class Session(BaseModel):
    """A server-side login session bound to one device.

    The session id is separate from the bearer token; the token only
    carries it as a claim.
    """

    session_id: str
    device_fingerprint: str
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)
    is_active: bool = True


class AuditLogEntry(BaseModel):
    """One security-relevant event on an account."""

    action: str
    timestamp: datetime = Field(default_factory=utc_now)
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class SecuritySettings(BaseModel):
    """Per-account security flags. Never exposed to clients."""

    last_password_change: datetime | None = None
    password_change_required: bool = False
    two_factor_enabled: bool = False
    two_factor_secret: str | None = None


class Account(BaseModel):
    """A shop user account.

    Security: ``hashed_password`` and ``security_settings`` must never be
    serialized into an API response. Use ``PublicUser.from_account``.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr | None = None
    hashed_password: str
    role: Role = Role.ADMIN
    is_active: bool = True

    login_attempts: LoginAttemptState = Field(default_factory=LoginAttemptState)
    device_fingerprints: list[DeviceFingerprint] = Field(default_factory=list)
    security_settings: SecuritySettings = Field(default_factory=SecuritySettings)
    sessions: list[Session] = Field(default_factory=list)
    audit_log: list[AuditLogEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value: Any) -> Any:
        # Length limits apply to the stripped name
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @property
    def active_sessions(self) -> list[Session]:
        return [s for s in self.sessions if s.is_active]

    @property
    def active_devices(self) -> list[DeviceFingerprint]:
        return [d for d in self.device_fingerprints if d.is_active]

    def matches_login(self, identifier: str) -> bool:
        """True if ``identifier`` is this account's username or email."""
        if identifier == self.username:
            return True
        return self.email is not None and identifier.lower() == self.email


class PublicUser(BaseModel):
    """The only account shape returned to clients."""

    id: uuid.UUID
    username: str
    email: str | None = None
    role: Role

    @classmethod
    def from_account(cls, account: Account) -> "PublicUser":
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
        )


class AccountProfile(PublicUser):
    """Public account fields plus derived session/device information."""

    created_at: datetime
    last_login: datetime | None = None
    device_count: int = 0
    session_count: int = 0

    @classmethod
    def from_account(cls, account: Account) -> "AccountProfile":
        active = sorted(
            account.active_sessions, key=lambda s: s.last_activity, reverse=True
        )
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            role=account.role,
            created_at=account.created_at,
            last_login=active[0].last_activity if active else None,
            device_count=len(account.active_devices),
            session_count=len(active),
        )


class SessionSummary(BaseModel):
    """An active session as shown to its owner. Ids and fingerprints stay server-side."""

    created_at: datetime
    last_activity: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    current: bool = False

    @classmethod
    def from_session(cls, session: Session, current: bool) -> "SessionSummary":
        return cls(
            created_at=session.created_at,
            last_activity=session.last_activity,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            current=current,
        )
