"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Dataclasses own domain shape;
the store and services do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_SECURITY_SCORE = 80


@dataclass
class Identity:
    """A registered user record as held by the credential store.

    id is an opaque random hex string assigned by the store on create().
    email is the login key and is compared exactly (no case folding).
    password_hash is a bcrypt hash; the plaintext is never kept anywhere.
    last_login / created_at are ISO 8601 UTC strings.
    """

    email: str
    name: str
    password_hash: str
    id: str | None = None
    bio: str = ""
    last_login: str = ""
    security_score: int = DEFAULT_SECURITY_SCORE
    created_at: str | None = None

    def public(self) -> PublicProfile:
        """Return the projection that is safe to hand to a client."""
        return PublicProfile(
            id=self.id or "",
            name=self.name,
            email=self.email,
            bio=self.bio,
            last_login=self.last_login,
            security_score=self.security_score,
        )


@dataclass(frozen=True)
class PublicProfile:
    """Identity without the password hash or internal bookkeeping."""

    id: str
    name: str
    email: str
    bio: str
    last_login: str
    security_score: int


@dataclass(frozen=True)
class AuthResult:
    """What register() and login() hand back: the caller's profile and a fresh token."""

    user: PublicProfile
    token: str
