"""
auth/errors.py -- Error taxonomy for the authentication flow.

Every failure the auth core can report is a NexusAuthError subclass carrying a
stable machine-readable `code` and a human-readable `message`. The store,
token service and authenticator raise these; api/main.py maps them to HTTP
status codes in a single exception handler. Nothing in auth/ knows about HTTP.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class NexusAuthError(Exception):
    """Base class for all domain errors.

    `detail` is optional operator-facing context (e.g. a remediation hint for
    a store failure). It must never contain secrets.
    """

    code = "error"
    default_message = "Request failed."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class ValidationError(NexusAuthError):
    code = "validation_error"
    default_message = "Invalid request."


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


class DuplicateEmail(NexusAuthError):
    """Raised by the store when the email UNIQUE constraint rejects an insert."""

    code = "duplicate_email"
    default_message = "This email is already registered."


class EmailAlreadyRegistered(DuplicateEmail):
    """Raised by register() when the pre-insert lookup finds the email."""


class AccountNotFound(NexusAuthError):
    code = "account_not_found"
    default_message = "Account not found"


class InvalidCredentials(NexusAuthError):
    code = "invalid_credentials"
    default_message = "Invalid password provided"


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class MissingToken(NexusAuthError):
    code = "missing_token"
    default_message = "Missing Authorization Header"


class MalformedToken(NexusAuthError):
    code = "malformed_token"
    default_message = "Malformed Token"


class InvalidOrExpiredToken(NexusAuthError):
    code = "invalid_token"
    default_message = "Invalid or Expired token"


class TokenExpired(InvalidOrExpiredToken):
    code = "token_expired"


# ---------------------------------------------------------------------------
# Authorization / lookup
# ---------------------------------------------------------------------------


class Forbidden(NexusAuthError):
    code = "forbidden"
    default_message = "Forbidden"


class NotFound(NexusAuthError):
    code = "not_found"
    default_message = "User not found."


# ---------------------------------------------------------------------------
# Storage (operational -- need operator action, never retried in code)
# ---------------------------------------------------------------------------


class StoreError(NexusAuthError):
    code = "store_error"


class StoreUnavailable(StoreError):
    code = "store_unavailable"
    default_message = "Database Link Broken"


class StorePermissionDenied(StoreError):
    code = "store_permission_denied"
    default_message = "Permission Denied (database)"
