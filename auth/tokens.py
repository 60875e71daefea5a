"""
auth/tokens.py -- Password hashing and session token (JWT) utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the identity id (sub), the
       issue time (iat) and the expiry (exp). Verification raises a specific
       NexusAuthError subclass on failure -- the route layer turns those into
       401s. There is no server-side session table; a token is valid until
       it expires.

  Passwords: bcrypt used directly (no passlib wrapper). Bcrypt's cost factor
       makes brute force expensive; checkpw compares in constant time.
       bcrypt only looks at the first 72 bytes of input, so longer passwords
       are rejected up front (see MAX_PASSWORD_BYTES) instead of being
       silently truncated or raising inside the library.

  Secret and clock: TokenService receives both at construction. Nothing in
       this module reads configuration, which keeps tests deterministic.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import InvalidOrExpiredToken, MalformedToken, MissingToken, TokenExpired

logger = logging.getLogger("nexusauth.tokens")

_ALGORITHM = "HS256"
_BEARER_PREFIX = "bearer"

MAX_PASSWORD_BYTES = 72
DEFAULT_BCRYPT_ROUNDS = 10
DEFAULT_TOKEN_TTL_SECONDS = 24 * 60 * 60

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Callers must keep plain within MAX_PASSWORD_BYTES; the Authenticator
    validates that before calling.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash or an over-long password counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TokenService:
    """Issue and verify signed, time-bounded bearer tokens.

    Usage:
        tokens = TokenService(secret_key=settings.secret_key)
        token = tokens.issue(identity.id)
        identity_id = tokens.verify(token)
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        if expire_seconds <= 0:
            raise ValueError("expire_seconds must be positive")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._clock = clock

    def issue(self, identity_id: str) -> str:
        """Encode a signed JWT for identity_id expiring expire_seconds from now."""
        now = self._clock()
        payload = {
            "sub": identity_id,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.expire_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str | None) -> str:
        """Verify a token and return the identity id it was issued for.

        Raises:
            MissingToken:          token is None or empty.
            MalformedToken:        not a three-segment JWT with a readable header.
            TokenExpired:          signature fine, but exp is at or before now.
            InvalidOrExpiredToken: bad signature, wrong algorithm, or no subject.
        """
        if not token:
            raise MissingToken()
        if token.count(".") != 2:
            raise MalformedToken()
        try:
            jwt.get_unverified_header(token)
        except JWTError as exc:
            raise MalformedToken() from exc

        # Expiry is checked below against the injected clock, not jose's.
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidOrExpiredToken() from exc

        subject = payload.get("sub")
        expires_at = payload.get("exp")
        if not isinstance(subject, str) or not subject or not isinstance(expires_at, int):
            raise InvalidOrExpiredToken()
        if self._clock().timestamp() >= expires_at:
            raise TokenExpired()
        return subject

    def verify_authorization_header(self, header: str | None) -> str:
        """Extract the token from an `Authorization: Bearer <token>` value and verify it."""
        if not header or not header.strip():
            raise MissingToken()
        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != _BEARER_PREFIX:
            raise MalformedToken()
        return self.verify(parts[1])
