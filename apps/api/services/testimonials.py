"""Remedy testimonials: one per user per remedy, re-moderated on every edit."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from models.remedy import RemedyTestimonial
from services.payloads import testimonial_payload
from services.remedies import get_published_remedy

logger = logging.getLogger(__name__)

EDITABLE_TESTIMONIAL_FIELDS = (
    "name",
    "location",
    "testimonial",
    "rating",
    "usage_duration",
    "health_condition",
    "results_experienced",
    "would_recommend",
)
DUPLICATE_TESTIMONIAL_MESSAGE = "You have already submitted a testimonial for this remedy"


def _validate_rating(rating: Any) -> int:
    try:
        value = int(rating)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    if value < 1 or value > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")
    return value


async def _load_testimonial(db: AsyncSession, testimonial_id: str) -> Optional[RemedyTestimonial]:
    result = await db.execute(
        select(RemedyTestimonial)
        .options(selectinload(RemedyTestimonial.user))
        .where(RemedyTestimonial.id == testimonial_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_testimonials_service(
    remedy_id: str,
    db: AsyncSession,
    verified_only: bool = True,
) -> Dict[str, Any]:
    await get_published_remedy(db, remedy_id)
    query = (
        select(RemedyTestimonial)
        .options(selectinload(RemedyTestimonial.user))
        .where(RemedyTestimonial.remedy_id == remedy_id)
    )
    if verified_only:
        query = query.where(RemedyTestimonial.is_verified.is_(True))
    query = query.order_by(RemedyTestimonial.created_at.desc(), RemedyTestimonial.id.asc())
    try:
        result = await db.execute(query)
    except SQLAlchemyError as exc:
        logger.error("testimonial_list_failed remedy=%s: %s", remedy_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch testimonials") from exc
    return {"testimonials": [testimonial_payload(t) for t in result.scalars().all()]}


async def create_testimonial_service(
    *,
    remedy_id: str,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    await get_published_remedy(db, remedy_id)

    existing = await db.execute(
        select(RemedyTestimonial.id).where(
            RemedyTestimonial.remedy_id == remedy_id,
            RemedyTestimonial.user_id == user_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail=DUPLICATE_TESTIMONIAL_MESSAGE)

    text = str(payload.get("testimonial") or "").strip()
    if not text or payload.get("rating") is None:
        raise HTTPException(status_code=400, detail="Missing required fields: testimonial, rating")
    rating = _validate_rating(payload.get("rating"))

    testimonial = RemedyTestimonial(
        remedy_id=remedy_id,
        user_id=user_id,
        name=payload.get("name"),
        location=payload.get("location"),
        testimonial=text,
        rating=rating,
        usage_duration=payload.get("usage_duration"),
        health_condition=payload.get("health_condition"),
        results_experienced=payload.get("results_experienced"),
        would_recommend=payload.get("would_recommend", True) is not False,
        is_verified=False,
    )
    db.add(testimonial)
    try:
        await db.commit()
    except IntegrityError as exc:
        # A concurrent submission for the same pair won the unique constraint.
        await db.rollback()
        raise HTTPException(status_code=400, detail=DUPLICATE_TESTIMONIAL_MESSAGE) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("testimonial_create_failed user=%s remedy=%s: %s", user_id, remedy_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create testimonial") from exc

    created = await _load_testimonial(db, testimonial.id)
    logger.info("testimonial_created user=%s remedy=%s testimonial=%s", user_id, remedy_id, created.id)
    return {
        "testimonial": testimonial_payload(created),
        "message": "Testimonial submitted successfully. It will be reviewed before being published.",
    }


async def update_testimonial_service(
    *,
    remedy_id: str,
    testimonial_id: Optional[str],
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    """Author-only edit; any successful edit sends the testimonial back to review."""
    if not testimonial_id:
        raise HTTPException(status_code=400, detail="Missing testimonial_id parameter")

    testimonial = await _load_testimonial(db, testimonial_id)
    if not testimonial or testimonial.remedy_id != remedy_id:
        raise HTTPException(status_code=404, detail="Testimonial not found")
    if testimonial.user_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")

    if "testimonial" in payload and not str(payload.get("testimonial") or "").strip():
        raise HTTPException(status_code=400, detail="testimonial cannot be empty")
    if "rating" in payload:
        payload = dict(payload, rating=_validate_rating(payload.get("rating")))

    for key in EDITABLE_TESTIMONIAL_FIELDS:
        if key in payload:
            setattr(testimonial, key, payload[key])
    testimonial.is_verified = False

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("testimonial_update_failed user=%s testimonial=%s: %s", user_id, testimonial_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update testimonial") from exc

    updated = await _load_testimonial(db, testimonial_id)
    logger.info("testimonial_updated user=%s testimonial=%s", user_id, testimonial_id)
    return {
        "testimonial": testimonial_payload(updated),
        "message": "Testimonial updated successfully. It will be reviewed again before being published.",
    }
