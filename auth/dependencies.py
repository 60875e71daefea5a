"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: the `Authorization: Bearer <token>` header. The token
service on app.state verifies it and yields the caller's identity id. That id
is the only authentication context handlers get -- there are no roles or
scopes to check, and no store lookup happens here.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.tokens import TokenService


def get_caller_id(request: Request) -> str:
    """Require a valid bearer token and return the identity id it carries.

    Raises MissingToken / MalformedToken / InvalidOrExpiredToken, which the
    app's exception handler renders as HTTP 401.

    Use as a FastAPI dependency:
        @router.put("/user/profile")
        def route(caller_id: str = Depends(get_caller_id)): ...
    """
    tokens: TokenService = request.app.state.tokens
    return tokens.verify_authorization_header(request.headers.get("Authorization"))
