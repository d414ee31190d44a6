"""Identity context: lazy profile creation and auth state-change fan-out."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.profile import Profile

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass
class SessionState:
    """Authenticated session as seen by one client."""

    user_id: str
    email: Optional[str] = None
    expires_at: Optional[int] = None
    profile: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


AuthListener = Callable[[AuthEvent, SessionState], Union[None, Awaitable[None]]]


class IdentityContext:
    """Observer hub for auth state changes, owned by the application instance."""

    def __init__(self) -> None:
        self._listeners: List[AuthListener] = []

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: AuthEvent, session: SessionState) -> None:
        # Snapshot so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                result = listener(event, session)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.warning("auth_listener_failed event=%s user=%s: %s", event.value, session.user_id, exc)


def _clean(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    return text or None


def profile_fields_from_claims(claims: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Map provider token claims/metadata onto profile columns."""
    metadata = claims.get("user_metadata") if isinstance(claims.get("user_metadata"), dict) else {}
    email = _clean(claims.get("email"))
    email_prefix = email.split("@", 1)[0] if email else None
    return {
        "email": email,
        "username": _clean(metadata.get("preferred_username")) or email_prefix,
        "full_name": _clean(metadata.get("full_name")) or _clean(metadata.get("name")),
        "avatar_url": _clean(metadata.get("avatar_url")) or _clean(metadata.get("picture")),
        "location": _clean(metadata.get("location")),
        "locale": _clean(metadata.get("locale")),
    }


def profile_payload(profile: Profile) -> Dict[str, Any]:
    return {
        "id": profile.id,
        "email": profile.email,
        "username": profile.username,
        "full_name": profile.full_name,
        "avatar_url": profile.avatar_url,
        "bio": profile.bio,
        "location": profile.location,
        "locale": profile.locale,
        "contribution_count": int(profile.contribution_count or 0),
        "verification_count": int(profile.verification_count or 0),
        "trust_score": int(profile.trust_score or 0),
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    }


async def get_profile(db: AsyncSession, user_id: str) -> Optional[Profile]:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def ensure_profile(db: AsyncSession, user_id: str, claims: Dict[str, Any]) -> Profile:
    """Create the profile on first sign-in; existing profiles are left untouched."""
    profile = await get_profile(db, user_id)
    if profile:
        return profile

    profile = Profile(id=user_id, **profile_fields_from_claims(claims))
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent first sign-in inserted the row first.
        await db.rollback()
        existing = await get_profile(db, user_id)
        if existing is None:
            raise HTTPException(status_code=500, detail="Failed to create profile")
        return existing
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("profile_create_failed user=%s: %s", user_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create profile") from exc

    await db.refresh(profile)
    logger.info("profile_created user=%s username=%s", user_id, profile.username)
    return profile
