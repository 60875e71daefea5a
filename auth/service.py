"""
auth/service.py -- Registration, login and profile mutation.

Authenticator owns the credential flow (register, login); ProfileService owns
the single authorization rule in the system: a caller may only change their
own record. Both are plain classes wired up once in the app factory with the
store, token service and settings they need. Route handlers call them and let
NexusAuthError propagate to the app's exception handler.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import (
    AccountNotFound,
    EmailAlreadyRegistered,
    Forbidden,
    InvalidCredentials,
    StoreUnavailable,
    ValidationError,
)
from auth.models import DEFAULT_SECURITY_SCORE, AuthResult, Identity, PublicProfile
from auth.store import UserStore
from auth.tokens import (
    DEFAULT_BCRYPT_ROUNDS,
    MAX_PASSWORD_BYTES,
    Clock,
    TokenService,
    hash_password,
    utcnow,
    verify_password,
)

logger = logging.getLogger("nexusauth.auth")

_UNIFIED_LOGIN_MESSAGE = "Invalid email or password."

_SECURITY_RECOMMENDATIONS = ["Upgrade to 2FA", "Review login sessions", "Check for data leaks"]
_SECURITY_VULNERABILITIES = ["Standard encryption", "MFA not enabled"]


def _require(value: str, field: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f"{field} is required.")


def _check_password(password: str) -> None:
    if not password:
        raise ValidationError("password is required.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes.")


class Authenticator:
    """Verify credentials against the store and issue session tokens.

    unify_login_errors controls whether login() tells "no such account" apart
    from "wrong password". Off by default to keep the messages the browser
    client already shows; turning it on stops the login endpoint from
    revealing which emails are registered.
    """

    def __init__(
        self,
        store: UserStore,
        tokens: TokenService,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
        unify_login_errors: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds
        self.unify_login_errors = unify_login_errors
        self._clock = clock
        # Hashed once per instance so an unknown-email login costs the same
        # bcrypt work as a wrong-password login.
        self._dummy_hash = hash_password("nexusauth_timing_dummy", rounds=bcrypt_rounds)

    def _now_iso(self) -> str:
        return self._clock().isoformat()

    def register(self, name: str, email: str, password: str) -> AuthResult:
        """Create an identity and return its public profile with a fresh token.

        Raises ValidationError, StoreUnavailable, EmailAlreadyRegistered (or
        DuplicateEmail when a concurrent registration wins the insert race),
        StorePermissionDenied.
        """
        _require(name, "name")
        _require(email, "email")
        _check_password(password)

        if not self.store.ping():
            raise StoreUnavailable(
                detail="The server is active but can't reach the database. Check server logs for connection errors."
            )

        if self.store.find_by_email(email) is not None:
            raise EmailAlreadyRegistered()

        identity = self.store.create(
            Identity(
                email=email,
                name=name,
                password_hash=hash_password(password, rounds=self.bcrypt_rounds),
                last_login=self._now_iso(),
            )
        )
        logger.info("Registered identity %s", identity.id)
        return AuthResult(user=identity.public(), token=self.tokens.issue(identity.id))

    def login(self, email: str, password: str) -> AuthResult:
        """Check email/password, stamp last_login and return profile + token.

        Always runs one bcrypt comparison, against a dummy hash when the email
        is unknown, so response time does not reveal account existence.
        """
        identity = self.store.find_by_email(email)
        if identity is None:
            verify_password(password, self._dummy_hash)
            logger.info("Login failed: unknown account")
            if self.unify_login_errors:
                raise InvalidCredentials(_UNIFIED_LOGIN_MESSAGE)
            raise AccountNotFound()

        if not verify_password(password, identity.password_hash):
            logger.info("Login failed: bad password for identity %s", identity.id)
            if self.unify_login_errors:
                raise InvalidCredentials(_UNIFIED_LOGIN_MESSAGE)
            raise InvalidCredentials()

        updated = self.store.update(identity.id, last_login=self._now_iso())
        logger.info("Login succeeded for identity %s", updated.id)
        return AuthResult(user=updated.public(), token=self.tokens.issue(updated.id))


class ProfileService:
    """Apply profile edits on behalf of an authenticated caller."""

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def update_profile(
        self,
        caller_id: str,
        target_id: str,
        name: str | None = None,
        bio: str | None = None,
    ) -> PublicProfile:
        """Update name and/or bio of target_id. Only the owner may do this.

        The ownership check runs before any store access, so a mismatched
        caller gets Forbidden whether or not the target exists. Fields left as
        None are not touched.
        """
        if caller_id != target_id:
            logger.warning("Identity %s tried to modify identity %s", caller_id, target_id)
            raise Forbidden()

        changes: dict[str, str] = {}
        if name is not None:
            _require(name, "name")
            changes["name"] = name
        if bio is not None:
            changes["bio"] = bio

        return self.store.update(target_id, **changes).public()


def security_report(identity: Identity) -> dict:
    """Static security summary shown on the dashboard.

    Display data only: the score is the stored default and the advice lists
    are fixed.
    """
    return {
        "score": identity.security_score or DEFAULT_SECURITY_SCORE,
        "recommendations": list(_SECURITY_RECOMMENDATIONS),
        "vulnerabilities": list(_SECURITY_VULNERABILITIES),
        "summary": f"Real-time security report for {identity.email} generated.",
    }
