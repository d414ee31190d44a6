"""Category listing and creation for remedies and stories."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.category import Category, RemedyCategory
from models.remedy import Remedy
from models.story import Story
from services.filtering import PUBLISHED
from services.payloads import category_payload

logger = logging.getLogger(__name__)


async def list_remedy_categories_service(db: AsyncSession, include_count: bool = False) -> Dict[str, Any]:
    try:
        result = await db.execute(select(RemedyCategory).order_by(RemedyCategory.name.asc()))
        categories = list(result.scalars().all())
        counts: Dict[str, int] = {}
        if include_count:
            count_result = await db.execute(
                select(Remedy.category_id, func.count(Remedy.id))
                .where(Remedy.status == PUBLISHED)
                .group_by(Remedy.category_id)
            )
            counts = {category_id: int(count) for category_id, count in count_result.all()}
    except SQLAlchemyError as exc:
        logger.error("remedy_category_list_failed: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch categories") from exc

    items = []
    for category in categories:
        item = category_payload(category)
        if include_count:
            item["remedy_count"] = counts.get(category.id, 0)
        items.append(item)
    return {"categories": items}


async def create_remedy_category_service(
    *,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    """Any authenticated caller may create a category; names are unique."""
    name = str(payload.get("name") or "").strip()
    icon = str(payload.get("icon") or "").strip()
    if not name or not icon:
        raise HTTPException(status_code=400, detail="Missing required fields: name, icon")

    existing = await db.execute(select(RemedyCategory.id).where(RemedyCategory.name == name))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail="Category name already exists")

    category = RemedyCategory(
        name=name,
        icon=icon,
        description=payload.get("description"),
        color=str(payload.get("color") or "").strip() or settings.DEFAULT_CATEGORY_COLOR,
    )
    db.add(category)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=400, detail="Category name already exists") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("remedy_category_create_failed user=%s: %s", user_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create category") from exc

    logger.info("remedy_category_created user=%s category=%s name=%s", user_id, category.id, name)
    return {"category": category_payload(category)}


async def list_story_categories_service(db: AsyncSession, include_count: bool = False) -> Dict[str, Any]:
    try:
        result = await db.execute(select(Category).order_by(Category.name.asc()))
        categories = list(result.scalars().all())
        counts: Dict[str, int] = {}
        if include_count:
            count_result = await db.execute(
                select(Story.category_id, func.count(Story.id))
                .where(Story.status == PUBLISHED)
                .group_by(Story.category_id)
            )
            counts = {category_id: int(count) for category_id, count in count_result.all()}
    except SQLAlchemyError as exc:
        logger.error("story_category_list_failed: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch categories") from exc

    items = []
    for category in categories:
        item = category_payload(category)
        if include_count:
            item["story_count"] = counts.get(category.id, 0)
        items.append(item)
    return {"categories": items}
