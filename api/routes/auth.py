"""
api/routes/auth.py -- Registration and login endpoints.

Routes:
  POST /api/auth/register   -- create an account; 201 {token, user}
  POST /api/auth/login      -- password login; 200 {token, user}

Both are public. Failures are raised as NexusAuthError subclasses by the
Authenticator and rendered by the app-level exception handler:
  400 validation / duplicate email / unknown account / wrong password
  403 store permission denied
  503 store unreachable

Handlers are plain `def` so FastAPI runs them in its threadpool; bcrypt and
the SQLAlchemy calls block.

Responses carry Cache-Control: no-store because they contain a bearer token.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.models import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from auth.models import AuthResult
from auth.service import Authenticator

router = APIRouter()


def _auth_response(result: AuthResult, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            token=result.token,
            user=UserResponse.from_profile(result.user),
        ).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account and log it in."""
    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.register(body.name, body.email, body.password)
    return _auth_response(result, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password and return a fresh token."""
    authenticator: Authenticator = request.app.state.authenticator
    result = authenticator.login(body.email, body.password)
    return _auth_response(result, status_code=200)
