"""Quick and advanced remedy search."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.remedy import Remedy
from services.filtering import (
    PUBLISHED,
    PageWindow,
    RemedyFilters,
    rank_by_relevance,
    remedy_relevance,
)
from services.payloads import category_payload
from services.procedures import search_remedies
from services.remedies import REMEDY_SUMMARY_OPTIONS, list_remedies_service, remedy_list_items

logger = logging.getLogger(__name__)


async def quick_search_service(
    *,
    query: str,
    db: AsyncSession,
    limit: int,
    category_id: Optional[str] = None,
    region: Optional[str] = None,
    difficulty: Optional[str] = None,
) -> Dict[str, Any]:
    """Top matches ranked by relevance score, then trust level."""
    conditions = [Remedy.status == PUBLISHED, search_remedies(query)]
    if category_id:
        conditions.append(Remedy.category_id == category_id)
    if region:
        conditions.append(Remedy.region == region)
    if difficulty:
        conditions.append(Remedy.difficulty == difficulty)

    try:
        result = await db.execute(
            select(Remedy).options(*REMEDY_SUMMARY_OPTIONS).where(*conditions)
        )
        ranked = rank_by_relevance(result.scalars().all(), lambda remedy: remedy_relevance(remedy, query))
        top = ranked[:limit]
        items = await remedy_list_items(db, [remedy for remedy, _ in top])
    except SQLAlchemyError as exc:
        logger.error("remedy_quick_search_failed query=%r: %s", query, exc)
        raise HTTPException(status_code=500, detail="Search failed") from exc

    results = []
    for (remedy, score), item in zip(top, items):
        results.append(
            {
                "id": remedy.id,
                "title": remedy.title,
                "subtitle": remedy.subtitle,
                "region": remedy.region,
                "difficulty": remedy.difficulty,
                "trust_level": int(remedy.trust_level or 0),
                "verification_count": int(remedy.verification_count or 0),
                "created_at": item["created_at"],
                "category": category_payload(remedy.category),
                "primary_image": item["primary_image"],
                "main_ingredients": [ingredient["name"] for ingredient in item["main_ingredients"]],
                "relevance_score": score,
                "snippet": remedy.subtitle or remedy.title,
            }
        )

    logger.info("remedy_quick_search query=%r matches=%s returned=%s", query, len(ranked), len(results))
    return {
        "results": results,
        "query": query,
        "total_results": len(ranked),
        "filters_applied": {
            "category_id": category_id,
            "region": region,
            "difficulty": difficulty,
        },
    }


async def advanced_search_service(
    *,
    filters: RemedyFilters,
    sort: str,
    window: PageWindow,
    db: AsyncSession,
) -> Dict[str, Any]:
    payload = await list_remedies_service(filters=filters, sort=sort, window=window, db=db)
    applied = asdict(filters)
    applied.pop("query", None)
    applied.pop("featured", None)
    payload.update(
        {
            "query": filters.query,
            "total_results": payload["total_count"],
            "filters_applied": applied,
        }
    )
    return payload
