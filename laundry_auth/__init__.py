"""laundry-auth: session and device bound authentication for the laundry POS."""

__version__ = "0.1.0"

# Core components
from laundry_auth.core.client import S3ClientManager
from laundry_auth.core.exceptions import (
    AccountLockedError,
    AuthError,
    InputValidationError,
    InvalidCredentialsError,
    InvalidTokenError,
    LaundryAuthError,
    RateLimitError,
    SetupAlreadyCompleteError,
    StorageConnectionError,
    StorageOperationError,
)
from laundry_auth.core.settings import LaundryAuthSettings, get_settings

# Auth components
from laundry_auth.auth.models import Account, PublicUser, Role
from laundry_auth.auth.service import AuthResult, AuthService, ClientInfo
from laundry_auth.auth.rate_limit import RateLimiter, RateLimitConfig

# FastAPI components
from laundry_auth.fastapi.app import create_app
from laundry_auth.fastapi.error_handlers import register_error_handlers

__all__ = [
    # Version
    "__version__",
    # Core
    "S3ClientManager",
    "LaundryAuthSettings",
    "get_settings",
    "LaundryAuthError",
    "AuthError",
    "InputValidationError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "AccountLockedError",
    "SetupAlreadyCompleteError",
    "RateLimitError",
    "StorageConnectionError",
    "StorageOperationError",
    # Auth
    "Account",
    "PublicUser",
    "Role",
    "AuthService",
    "AuthResult",
    "ClientInfo",
    "RateLimiter",
    "RateLimitConfig",
    # FastAPI
    "create_app",
    "register_error_handlers",
]
