"""Request dependencies: service, S3 client, client info and bearer token."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from laundry_auth.auth.rate_limit import client_address
from laundry_auth.auth.service import UNKNOWN_DEVICE, AuthService, ClientInfo
from laundry_auth.core.client import S3ClientProtocol
from laundry_auth.core.exceptions import InvalidTokenError

DEVICE_FINGERPRINT_HEADER = "X-Device-Fingerprint"

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_s3_client(request: Request) -> S3ClientProtocol:
    return request.app.state.s3_client


def get_client_info(request: Request) -> ClientInfo:
    """Collect the device fingerprint and origin of a request.

    The fingerprint header is advisory and untrusted; a missing one is
    recorded as ``unknown``.
    """
    settings = request.app.state.settings
    fingerprint = request.headers.get(DEVICE_FINGERPRINT_HEADER, "").strip()
    return ClientInfo(
        fingerprint=fingerprint or UNKNOWN_DEVICE,
        ip_address=client_address(
            request, settings.trust_x_forwarded_for, set(settings.trusted_proxies)
        ),
        user_agent=request.headers.get("User-Agent"),
    )


def get_optional_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


def get_bearer_token(token: str | None = Depends(get_optional_token)) -> str:
    """Require a bearer token; a missing one is just another invalid token."""
    if token is None:
        raise InvalidTokenError()
    return token
