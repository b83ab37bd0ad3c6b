"""Security utilities - password hashing and signed token codec"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import secrets

import bcrypt
from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from authservice.core.exceptions import (
    ExpiredTokenError,
    InvalidSignatureError,
    MalformedTokenError,
)

BCRYPT_MAX_PASSWORD_BYTES = 72


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    # bcrypt only considers the first 72 bytes and rejects longer input
    if len(plain_password.encode('utf-8')) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def token_prefix(token: str) -> str:
    """Loggable prefix of a token string"""
    return f"{token[:10]}..."


class TokenCodec:
    """
    Create and verify signed, expiring tokens.

    The codec is key-agnostic: every call takes the secret key, so one
    instance serves both access and refresh tokens while each token class
    keeps its own key.
    """

    RESERVED_CLAIMS = ("sub", "iss", "iat", "exp")

    def __init__(
        self,
        issuer: str,
        algorithm: str = "HS256",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.issuer = issuer
        self.algorithm = algorithm
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    def generate(
        self,
        secret_key: str,
        user: Any,
        expires_at: datetime,
        additional_claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Create a signed token for ``user``.

        Args:
            secret_key: Key of the token class being minted
            user: Anything carrying a ``username`` attribute
            expires_at: Absolute expiry instant
            additional_claims: Extra claims; reserved claims always win

        Returns:
            str: Encoded token
        """
        claims: Dict[str, Any] = dict(additional_claims or {})
        claims["sub"] = user.username
        claims["iss"] = self.issuer
        claims["iat"] = int(self.now().timestamp())
        claims["exp"] = int(expires_at.timestamp())
        return jwt.encode(claims, secret_key, algorithm=self.algorithm)

    def decode(self, secret_key: str, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry and return the claims.

        Raises:
            MalformedTokenError: token is structurally invalid
            InvalidSignatureError: signature does not match ``secret_key``
            ExpiredTokenError: now is at or after the encoded expiry
        """
        try:
            jwt.get_unverified_claims(token)
        except (JWTError, AttributeError, TypeError) as exc:
            raise MalformedTokenError(str(exc)) from exc

        try:
            claims = jwt.decode(
                token,
                secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTClaimsError as exc:
            raise MalformedTokenError(str(exc)) from exc
        except JWTError as exc:
            raise InvalidSignatureError(str(exc)) from exc

        exp = claims.get("exp")
        if not isinstance(exp, (int, float)):
            raise MalformedTokenError("Token has no expiry")
        if self.now().timestamp() >= exp:
            raise ExpiredTokenError("Token has expired")
        return claims

    def extract_username(self, secret_key: str, token: str) -> Optional[str]:
        """Subject claim of a verified token, or None when absent"""
        return self.decode(secret_key, token).get("sub")

    def is_valid(self, secret_key: str, token: str, user: Any) -> bool:
        """
        True when the token verifies, belongs to ``user`` and has not expired.

        Decoding failures propagate; callers map them.
        """
        claims = self.decode(secret_key, token)
        username = claims.get("sub")
        return username is not None and username == user.username and not self._is_expired(claims)

    def _is_expired(self, claims: Dict[str, Any]) -> bool:
        return self.now().timestamp() >= claims["exp"]


def new_token_id() -> str:
    """Unique token ID"""
    return secrets.token_urlsafe(32)
