"""HTTP endpoints for authentication and health."""

from fastapi import APIRouter, Depends, Query

from laundry_auth import __version__
from laundry_auth.auth.models import utc_now
from laundry_auth.auth.service import AuthService, ClientInfo
from laundry_auth.core.client import S3ClientProtocol
from laundry_auth.fastapi.dependencies import (
    get_auth_service,
    get_bearer_token,
    get_client_info,
    get_optional_token,
    get_s3_client,
)
from laundry_auth.fastapi.schemas import (
    AuditEntryOut,
    AuditLogResponse,
    AuthResponse,
    ChangePasswordRequest,
    HealthResponse,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    ProfileOut,
    ProfileResponse,
    SessionOut,
    SessionsResponse,
    SetupRequest,
    SetupStatusResponse,
    UserOut,
    UserResponse,
)

auth_router = APIRouter(tags=["auth"])
health_router = APIRouter(tags=["health"])


@health_router.get("", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(timestamp=utc_now(), version=__version__)


@auth_router.get("/setup-required", response_model=SetupStatusResponse)
async def setup_required(
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
) -> SetupStatusResponse:
    """Whether the first administrator still has to be created."""
    status = await service.setup_status(s3_client)
    return SetupStatusResponse(
        setup_required=status.setup_required, user_count=status.user_count
    )


@auth_router.post("/setup", response_model=AuthResponse)
async def setup(
    body: SetupRequest,
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> AuthResponse:
    """Create the first administrator and log them in."""
    result = await service.setup(
        s3_client, body.username, body.password, body.email, client
    )
    return AuthResponse(
        message="Admin account created successfully",
        token=result.token,
        user=UserOut(**result.user.model_dump()),
    )


@auth_router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> AuthResponse:
    """Log in with a username or email address."""
    result = await service.login(s3_client, body.username, body.password, client)
    return AuthResponse(
        message="Login successful",
        token=result.token,
        user=UserOut(**result.user.model_dump()),
    )


@auth_router.post("/logout", response_model=MessageResponse)
async def logout(
    token: str | None = Depends(get_optional_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    """End the current session. Always succeeds."""
    if token is not None:
        await service.logout(s3_client, token, client)
    return MessageResponse(message="Logged out successfully")


@auth_router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> LogoutAllResponse:
    """End every session of the account, including this one."""
    revoked = await service.logout_all(s3_client, token, client)
    return LogoutAllResponse(
        message="Logged out from all devices", sessions_revoked=revoked
    )


@auth_router.get("/verify", response_model=UserResponse)
async def verify(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> UserResponse:
    user = await service.verify(s3_client, token, client)
    return UserResponse(user=UserOut(**user.model_dump()))


@auth_router.post("/change-password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> MessageResponse:
    await service.change_password(
        s3_client, token, body.current_password, body.new_password, client
    )
    return MessageResponse(message="Password changed successfully")


@auth_router.get("/profile", response_model=ProfileResponse)
async def profile(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> ProfileResponse:
    account_profile = await service.profile(s3_client, token, client)
    return ProfileResponse(user=ProfileOut(**account_profile.model_dump()))


@auth_router.get("/sessions", response_model=SessionsResponse)
async def sessions(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> SessionsResponse:
    summaries = await service.list_sessions(s3_client, token, client)
    return SessionsResponse(
        sessions=[SessionOut(**s.model_dump()) for s in summaries]
    )


@auth_router.get("/audit-log", response_model=AuditLogResponse)
async def audit_log(
    limit: int = Query(50, ge=1, le=100),
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
    s3_client: S3ClientProtocol = Depends(get_s3_client),
    client: ClientInfo = Depends(get_client_info),
) -> AuditLogResponse:
    """Most recent security events of the account, newest first."""
    entries = await service.audit_history(s3_client, token, limit, client)
    return AuditLogResponse(
        entries=[AuditEntryOut(**e.model_dump()) for e in entries]
    )
