"""Informal story attestations."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from models.story import Story, StoryVerification
from services.payloads import story_verification_payload
from services.procedures import increment_verification_count
from services.stories import get_published_story

logger = logging.getLogger(__name__)

STORY_VERIFICATION_TYPES = (
    "local_confirmation",
    "source_verification",
    "family_tradition",
    "visual_evidence",
    "need_more_info",
)


async def _load_verification(db: AsyncSession, verification_id: str) -> Optional[StoryVerification]:
    result = await db.execute(
        select(StoryVerification)
        .options(selectinload(StoryVerification.user))
        .where(StoryVerification.id == verification_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_story_verifications_service(
    story_id: str,
    db: AsyncSession,
    verified_only: bool = True,
) -> Dict[str, Any]:
    await get_published_story(db, story_id)
    query = (
        select(StoryVerification)
        .options(selectinload(StoryVerification.user))
        .where(StoryVerification.story_id == story_id)
    )
    if verified_only:
        query = query.where(StoryVerification.is_verified.is_(True))
    try:
        result = await db.execute(
            query.order_by(StoryVerification.created_at.desc(), StoryVerification.id.asc())
        )
    except SQLAlchemyError as exc:
        logger.error("story_verification_list_failed story=%s: %s", story_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch verifications") from exc

    verifications = list(result.scalars().all())
    summary = {kind: 0 for kind in STORY_VERIFICATION_TYPES}
    for verification in verifications:
        if verification.verification_type in summary:
            summary[verification.verification_type] += 1
    summary["total"] = len(verifications)
    return {
        "verifications": [story_verification_payload(v) for v in verifications],
        "summary": summary,
    }


async def create_story_verification_service(
    *,
    story_id: str,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    await get_published_story(db, story_id)

    verification_type = str(payload.get("verification_type") or "").strip()
    if not verification_type:
        raise HTTPException(status_code=400, detail="Missing required fields: verification_type")
    if verification_type not in STORY_VERIFICATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid verification type")

    verification = StoryVerification(
        story_id=story_id,
        user_id=user_id,
        verification_type=verification_type,
        evidence_text=payload.get("evidence_text"),
        evidence_url=payload.get("evidence_url"),
        is_verified=False,
    )
    db.add(verification)
    try:
        await db.flush()
        await increment_verification_count(db, Story, story_id)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("story_verification_create_failed user=%s story=%s: %s", user_id, story_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create verification") from exc

    created = await _load_verification(db, verification.id)
    logger.info("story_verification_created user=%s story=%s type=%s", user_id, story_id, verification_type)
    return {
        "verification": story_verification_payload(created),
        "message": "Verification submitted successfully. It will be reviewed by our moderators.",
    }


async def update_story_verification_service(
    *,
    story_id: str,
    verification_id: Optional[str],
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    if not verification_id:
        raise HTTPException(status_code=400, detail="Missing verification_id parameter")

    verification = await _load_verification(db, verification_id)
    if not verification or verification.story_id != story_id:
        raise HTTPException(status_code=404, detail="Verification not found")
    if verification.user_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")

    if "verification_type" in payload and payload["verification_type"] not in STORY_VERIFICATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid verification type")
    for key in ("verification_type", "evidence_text", "evidence_url"):
        if key in payload:
            setattr(verification, key, payload[key])
    verification.is_verified = False

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("story_verification_update_failed user=%s verification=%s: %s", user_id, verification_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update verification") from exc

    updated = await _load_verification(db, verification_id)
    logger.info("story_verification_updated user=%s verification=%s", user_id, verification_id)
    return {
        "verification": story_verification_payload(updated),
        "message": "Verification updated successfully. It will be reviewed again.",
    }
