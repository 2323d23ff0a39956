"""Request and response bodies for the auth API.

JSON keys are camelCase on the wire; snake_case is accepted on input too.
Request fields are deliberately permissive so that missing or short
values reach the service and are answered with its 400 errors.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from laundry_auth.auth.models import Role


class APIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SetupRequest(APIModel):
    username: str | None = None
    password: str | None = None
    email: str | None = None


class LoginRequest(APIModel):
    """``username`` may also be the account's email address."""

    username: str | None = None
    password: str | None = None


class ChangePasswordRequest(APIModel):
    current_password: str | None = None
    new_password: str | None = None


class UserOut(APIModel):
    id: uuid.UUID
    username: str
    email: str | None = None
    role: Role


class ProfileOut(UserOut):
    created_at: datetime
    last_login: datetime | None = None
    device_count: int
    session_count: int


class SessionOut(APIModel):
    created_at: datetime
    last_activity: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    current: bool


class AuditEntryOut(APIModel):
    action: str
    timestamp: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = {}


class MessageResponse(APIModel):
    success: bool = True
    message: str


class SetupStatusResponse(APIModel):
    success: bool = True
    setup_required: bool
    user_count: int


class AuthResponse(APIModel):
    success: bool = True
    message: str
    token: str
    user: UserOut


class UserResponse(APIModel):
    success: bool = True
    user: UserOut


class ProfileResponse(APIModel):
    success: bool = True
    user: ProfileOut


class SessionsResponse(APIModel):
    success: bool = True
    sessions: list[SessionOut]


class LogoutAllResponse(APIModel):
    success: bool = True
    message: str
    sessions_revoked: int


class AuditLogResponse(APIModel):
    success: bool = True
    entries: list[AuditEntryOut]


class HealthResponse(APIModel):
    status: str = "ok"
    timestamp: datetime
    version: str
