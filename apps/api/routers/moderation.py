"""Moderator approvals for testimonials and verifications."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from services.moderation import (
    approve_remedy_verification_service,
    approve_story_verification_service,
    approve_testimonial_service,
)

router = APIRouter()


@router.post("/testimonials/{testimonial_id}/approve")
async def approve_testimonial(
    testimonial_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await approve_testimonial_service(testimonial_id, auth.user_id, db)


@router.post("/remedy-verifications/{verification_id}/approve")
async def approve_remedy_verification(
    verification_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await approve_remedy_verification_service(verification_id, auth.user_id, db)


@router.post("/story-verifications/{verification_id}/approve")
async def approve_story_verification(
    verification_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await approve_story_verification_service(verification_id, auth.user_id, db)
