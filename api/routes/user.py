"""
api/routes/user.py -- Endpoints that act on an authenticated user's record.

Routes:
  PUT /api/user/profile            -- update own name/bio (bearer token)
  GET /api/user/security/{email}   -- static security report (bearer token)

Auth policy: get_caller_id rejects the request with 401 before the handler
runs if the token is missing, malformed, tampered with or expired. The
profile update is additionally owner-only (ProfileService raises Forbidden
when the body id is not the caller's own).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import ProfileUpdateRequest, SecurityReportResponse, UserResponse
from auth.dependencies import get_caller_id
from auth.errors import NotFound
from auth.service import ProfileService, security_report
from auth.store import UserStore

router = APIRouter()


@router.put("/user/profile", response_model=UserResponse)
def update_profile(
    request: Request,
    body: ProfileUpdateRequest,
    caller_id: str = Depends(get_caller_id),
) -> JSONResponse:
    """Update the caller's own display name and/or bio."""
    profiles: ProfileService = request.app.state.profiles
    profile = profiles.update_profile(caller_id, body.id, name=body.name, bio=body.bio)
    return JSONResponse(content=UserResponse.from_profile(profile).model_dump(by_alias=True))


@router.get("/user/security/{email}", response_model=SecurityReportResponse)
def get_security_report(
    request: Request,
    email: str,
    caller_id: str = Depends(get_caller_id),
) -> SecurityReportResponse:
    """Return the dashboard's security summary for the account with this email."""
    user_store: UserStore = request.app.state.user_store
    identity = user_store.find_by_email(email)
    if identity is None:
        raise NotFound()
    return SecurityReportResponse(**security_report(identity))
