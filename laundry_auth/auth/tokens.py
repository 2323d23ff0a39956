"""Signed bearer tokens carrying an account id and a session id."""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from laundry_auth.auth.models import utc_now
from laundry_auth.core.exceptions import InvalidTokenError


@dataclass(frozen=True)
class TokenClaims:
    """The verified contents of an access token."""

    account_id: uuid.UUID
    session_id: str
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issues and verifies HMAC-signed JWT access tokens.

    A token is only a pointer: it names the account and the server-side
    session. Revocation, idle expiry and device binding are enforced by
    the session, not the token.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_hours: int = 24,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = timedelta(hours=expire_hours)
        self.clock = clock

    def create_token(self, account_id: uuid.UUID, session_id: str) -> str:
        """Create a signed access token for one session."""
        now = self.clock()
        to_encode = {
            "sub": str(account_id),
            "sid": session_id,
            "iat": int(now.timestamp()),
            "exp": int((now + self.expires_delta).timestamp()),
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> TokenClaims:
        """Verify a token's signature and expiry and return its claims.

        Raises:
            InvalidTokenError: If the token is malformed, tampered with,
                expired, or not an access token
        """
        try:
            # Expiry is checked against the service clock below
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidTokenError() from e

        if payload.get("type") != "access":
            raise InvalidTokenError()

        try:
            claims = TokenClaims(
                account_id=uuid.UUID(payload["sub"]),
                session_id=str(payload["sid"]),
                issued_at=datetime.fromtimestamp(payload["iat"], timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError() from e

        if claims.expires_at <= self.clock():
            raise InvalidTokenError()
        return claims
