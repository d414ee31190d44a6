"""Remedy search router (quick GET and structured POST)."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.rate_limit import rate_limit
from services.filtering import RemedyFilters, normalize_sort, resolve_page_window, validate_search_query
from services.search import advanced_search_service, quick_search_service

router = APIRouter()


class AdvancedSearchRequest(BaseModel):
    query: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    regions: List[str] = Field(default_factory=list)
    difficulties: List[str] = Field(default_factory=list)
    ingredients: List[str] = Field(default_factory=list)
    benefits: List[str] = Field(default_factory=list)
    trust_level_min: Optional[int] = Field(default=None, ge=0, le=4)
    preparation_time_max: Optional[int] = Field(default=None, ge=0)
    sort_by: str = "relevance"
    page: Optional[int] = None
    limit: Optional[int] = None


@router.get("")
async def quick_search(
    q: Optional[str] = None,
    category_id: Optional[str] = None,
    region: Optional[str] = None,
    difficulty: Optional[str] = None,
    limit: Optional[int] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("remedy_search", limit=120, window_seconds=60)),
    db: AsyncSession = Depends(get_db),
):
    query = validate_search_query(q, required=True)
    window = resolve_page_window(1, limit, default_limit=settings.SEARCH_DEFAULT_LIMIT)
    return await quick_search_service(
        query=query,
        db=db,
        limit=window.limit,
        category_id=category_id,
        region=region,
        difficulty=difficulty,
    )


@router.post("")
async def advanced_search(
    body: AdvancedSearchRequest,
    _rate_limit: None = Depends(rate_limit("remedy_search", limit=120, window_seconds=60)),
    db: AsyncSession = Depends(get_db),
):
    query = validate_search_query(body.query, required=True)
    filters = RemedyFilters(
        query=query,
        category_ids=body.categories,
        regions=body.regions,
        difficulties=body.difficulties,
        trust_level_min=body.trust_level_min,
        preparation_time_max=body.preparation_time_max,
        ingredients=body.ingredients,
        benefits=body.benefits,
    )
    return await advanced_search_service(
        filters=filters,
        sort=normalize_sort(body.sort_by, default="relevance"),
        window=resolve_page_window(body.page, body.limit, default_limit=settings.SEARCH_DEFAULT_LIMIT),
        db=db,
    )
