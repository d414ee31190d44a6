"""Moderation of testimonials and verifications, and trust-level upkeep."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from config import settings
from models.remedy import Remedy, RemedyTestimonial, RemedyVerification
from models.story import Story, StoryVerification
from services.payloads import (
    remedy_verification_payload,
    story_verification_payload,
    testimonial_payload,
)

logger = logging.getLogger(__name__)

# (minimum verified positive attestations, trust level), highest first
TRUST_LEVEL_THRESHOLDS = ((10, 4), (5, 3), (3, 2), (1, 1))
NON_SUPPORTING_STORY_TYPES = {"need_more_info"}


def trust_level_for(verified_count: int) -> int:
    for minimum, level in TRUST_LEVEL_THRESHOLDS:
        if verified_count >= minimum:
            return level
    return 0


def is_moderator(user_id: str) -> bool:
    return user_id in set(settings.MODERATOR_USER_IDS or [])


def ensure_moderator(user_id: str) -> None:
    if not is_moderator(user_id):
        raise HTTPException(status_code=403, detail="Moderator role required")


async def _load_with_user(db: AsyncSession, model: Any, record_id: str) -> Any:
    result = await db.execute(
        select(model)
        .options(selectinload(model.user))
        .where(model.id == record_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _commit(db: AsyncSession, event: str, record_id: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("%s_failed id=%s: %s", event, record_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update moderation state") from exc


async def approve_testimonial_service(testimonial_id: str, moderator_id: str, db: AsyncSession) -> Dict[str, Any]:
    ensure_moderator(moderator_id)
    testimonial = await _load_with_user(db, RemedyTestimonial, testimonial_id)
    if not testimonial:
        raise HTTPException(status_code=404, detail="Testimonial not found")

    testimonial.is_verified = True
    await _commit(db, "testimonial_approve", testimonial_id)
    testimonial = await _load_with_user(db, RemedyTestimonial, testimonial_id)
    logger.info("testimonial_approved id=%s moderator=%s", testimonial_id, moderator_id)
    return {"testimonial": testimonial_payload(testimonial)}


async def approve_remedy_verification_service(
    verification_id: str,
    moderator_id: str,
    db: AsyncSession,
) -> Dict[str, Any]:
    ensure_moderator(moderator_id)
    verification = await _load_with_user(db, RemedyVerification, verification_id)
    if not verification:
        raise HTTPException(status_code=404, detail="Verification not found")

    verification.is_verified = True
    await db.flush()

    count_result = await db.execute(
        select(func.count(RemedyVerification.id)).where(
            RemedyVerification.remedy_id == verification.remedy_id,
            RemedyVerification.is_verified.is_(True),
            RemedyVerification.is_positive.is_(True),
        )
    )
    verified_count = int(count_result.scalar() or 0)
    remedy = await db.get(Remedy, verification.remedy_id)
    trust_level = int(remedy.trust_level or 0) if remedy else 0
    if remedy is not None:
        trust_level = max(trust_level, trust_level_for(verified_count))
        remedy.trust_level = trust_level

    await _commit(db, "remedy_verification_approve", verification_id)
    verification = await _load_with_user(db, RemedyVerification, verification_id)
    logger.info(
        "remedy_verification_approved id=%s remedy=%s verified=%s trust_level=%s",
        verification_id,
        verification.remedy_id,
        verified_count,
        trust_level,
    )
    return {
        "verification": remedy_verification_payload(verification),
        "trust_level": trust_level,
    }


async def approve_story_verification_service(
    verification_id: str,
    moderator_id: str,
    db: AsyncSession,
) -> Dict[str, Any]:
    ensure_moderator(moderator_id)
    verification = await _load_with_user(db, StoryVerification, verification_id)
    if not verification:
        raise HTTPException(status_code=404, detail="Verification not found")

    verification.is_verified = True
    await db.flush()

    count_result = await db.execute(
        select(func.count(StoryVerification.id)).where(
            StoryVerification.story_id == verification.story_id,
            StoryVerification.is_verified.is_(True),
            StoryVerification.verification_type.not_in(NON_SUPPORTING_STORY_TYPES),
        )
    )
    verified_count = int(count_result.scalar() or 0)
    story = await db.get(Story, verification.story_id)
    trust_level = int(story.trust_level or 0) if story else 0
    if story is not None:
        trust_level = max(trust_level, trust_level_for(verified_count))
        story.trust_level = trust_level

    await _commit(db, "story_verification_approve", verification_id)
    verification = await _load_with_user(db, StoryVerification, verification_id)
    logger.info(
        "story_verification_approved id=%s story=%s verified=%s trust_level=%s",
        verification_id,
        verification.story_id,
        verified_count,
        trust_level,
    )
    return {
        "verification": story_verification_payload(verification),
        "trust_level": trust_level,
    }
