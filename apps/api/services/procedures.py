"""Persistence gateway procedures shared by the content services."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import async_session_maker
from models.remedy import Remedy, RemedyTestimonial
from models.story import Story
from services.filtering import PUBLISHED, text_match

logger = logging.getLogger(__name__)


def search_remedies(query: str):
    """Condition matching published remedies whose text fields contain the query."""
    return text_match(
        [Remedy.title, Remedy.subtitle, Remedy.description, Remedy.region],
        query,
    )


async def calculate_remedy_rating(db: AsyncSession, remedy_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Average rating (one decimal) and count of verified testimonials per remedy."""
    ids = [remedy_id for remedy_id in remedy_ids if remedy_id]
    if not ids:
        return {}
    result = await db.execute(
        select(
            RemedyTestimonial.remedy_id,
            func.avg(RemedyTestimonial.rating),
            func.count(RemedyTestimonial.id),
        )
        .where(
            RemedyTestimonial.remedy_id.in_(ids),
            RemedyTestimonial.is_verified.is_(True),
        )
        .group_by(RemedyTestimonial.remedy_id)
    )
    stats: Dict[str, Dict[str, Any]] = {}
    for remedy_id, avg_rating, count in result.all():
        stats[remedy_id] = {
            "avg_rating": round(float(avg_rating or 0), 1),
            "count": int(count or 0),
        }
    return stats


async def get_stories_with_coordinates_simple(
    db: AsyncSession,
    *,
    category_id: Optional[str] = None,
    limit: int = 500,
) -> List[Story]:
    conditions = [
        Story.status == PUBLISHED,
        Story.latitude.is_not(None),
        Story.longitude.is_not(None),
    ]
    if category_id:
        conditions.append(Story.category_id == category_id)
    result = await db.execute(
        select(Story)
        .where(*conditions)
        .order_by(Story.trust_level.desc(), Story.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def increment_view_count(model: Any, item_id: str) -> None:
    """Best-effort, at-most-once view bump in its own session; failures are logged only."""
    try:
        async with async_session_maker() as session:
            await session.execute(
                update(model)
                .where(model.id == item_id)
                .values(view_count=func.coalesce(model.view_count, 0) + 1)
            )
            await session.commit()
    except Exception as exc:
        logger.warning("view_count_increment_failed table=%s id=%s: %s", model.__tablename__, item_id, exc)


async def increment_verification_count(db: AsyncSession, model: Any, item_id: str) -> None:
    """Atomic verification counter bump inside the caller's transaction."""
    try:
        await db.execute(
            update(model)
            .where(model.id == item_id)
            .values(verification_count=func.coalesce(model.verification_count, 0) + 1)
        )
    except SQLAlchemyError as exc:
        logger.error("verification_count_increment_failed table=%s id=%s: %s", model.__tablename__, item_id, exc)
        raise
