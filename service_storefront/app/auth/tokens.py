"""
JWT issuance and verification for Storefront users.
"""

import time
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from shared.errors import AuthenticationError
from shared.logging import get_logger

DEFAULT_TOKEN_TTL_SECONDS = 30 * 24 * 3600


def create_access_token(
    user_id: str,
    secret: str,
    *,
    algorithm: str = "HS256",
    expires_in: int = DEFAULT_TOKEN_TTL_SECONDS,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Sign a bearer token whose ``sub`` claim is the user id."""
    now = int(time.time())
    claims = {"sub": user_id, "iat": now, "exp": now + expires_in}
    if extra_claims:
        claims.update(extra_claims)
    return jwt.encode(claims, secret, algorithm=algorithm)


class TokenValidator:
    """Verifies HMAC-signed bearer tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self.secret = secret
        self.algorithm = algorithm
        self.logger = get_logger("storefront.auth.tokens")

    def subject(self, token: str) -> str:
        """Return the verified ``sub`` claim or raise ``AuthenticationError``."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as exc:
            self.logger.warning("Token verification failed", error=str(exc))
            raise AuthenticationError("Not authorized, token failed") from exc

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise AuthenticationError("Not authorized, token failed", details={"reason": "missing subject"})
        return subject
