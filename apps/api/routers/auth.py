"""
Authentication router: provider session exchange, refresh, logout and profile lookup.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import auth_redirect_url, settings
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.identity import (
    AuthEvent,
    IdentityContext,
    SessionState,
    ensure_profile,
    get_profile,
    profile_payload,
)
from services.session_token import create_session_token, decode_provider_token

router = APIRouter()


class SessionExchangeRequest(BaseModel):
    access_token: str


class SessionResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    session_token: str
    session_expires_at: int
    profile: Dict[str, Any]


def _identity(request: Request) -> Optional[IdentityContext]:
    return getattr(request.app.state, "identity", None)


async def _publish(request: Request, event: AuthEvent, session: SessionState) -> None:
    identity = _identity(request)
    if identity is not None:
        await identity.publish(event, session)


@router.get("/config")
async def get_auth_config():
    """Sign-in options for the client."""
    return {
        "providers": list(settings.AUTH_SOCIAL_PROVIDERS),
        "redirect_url": auth_redirect_url(),
    }


@router.post("/session", response_model=SessionResponse)
async def exchange_session(
    body: SessionExchangeRequest,
    request: Request,
    _rate_limit: None = Depends(rate_limit("auth_session", limit=30, window_seconds=60)),
    db: AsyncSession = Depends(get_db),
):
    """
    Verify a provider access token, create the profile on first sign-in
    and issue an API session token.
    """
    try:
        claims = decode_provider_token(body.access_token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user_id = str(claims["sub"])
    email = str(claims.get("email") or "") or None
    profile = await ensure_profile(db, user_id, claims)
    session = create_session_token(user_id, email=email)
    profile_data = profile_payload(profile)

    await _publish(
        request,
        AuthEvent.SIGNED_IN,
        SessionState(
            user_id=user_id,
            email=email,
            expires_at=session["expires_at"],
            profile=profile_data,
            metadata=claims.get("user_metadata") if isinstance(claims.get("user_metadata"), dict) else {},
        ),
    )
    return SessionResponse(
        user_id=user_id,
        email=email,
        session_token=session["token"],
        session_expires_at=session["expires_at"],
        profile=profile_data,
    )


@router.post("/refresh")
async def refresh_session(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
):
    session = create_session_token(auth.user_id, email=auth.email)
    await _publish(
        request,
        AuthEvent.TOKEN_REFRESHED,
        SessionState(user_id=auth.user_id, email=auth.email, expires_at=session["expires_at"]),
    )
    return {
        "session_token": session["token"],
        "session_expires_at": session["expires_at"],
    }


@router.post("/logout")
async def logout(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
):
    await _publish(request, AuthEvent.SIGNED_OUT, SessionState(user_id=auth.user_id, email=auth.email))
    return {"success": True}


@router.get("/me")
async def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the signed-in contributor's profile."""
    profile = await get_profile(db, auth.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile_payload(profile)}
