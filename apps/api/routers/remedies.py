"""Remedy list/detail/authoring router."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.remedy import Remedy
from routers.auth_scope import AuthContext, get_auth_context, get_optional_auth_context
from routers.rate_limit import rate_limit
from services.filtering import RemedyFilters, normalize_sort, resolve_page_window, validate_search_query
from services.procedures import increment_view_count
from services.remedies import (
    archive_remedy_service,
    create_remedy_service,
    get_remedy_detail_service,
    list_remedies_service,
    update_remedy_service,
)

router = APIRouter()


class IngredientInput(BaseModel):
    name: str
    amount: Optional[str] = None
    unit: Optional[str] = None
    notes: Optional[str] = None
    is_main_ingredient: bool = False


class StepInput(BaseModel):
    instruction: str
    duration_minutes: Optional[int] = None
    tips: Optional[str] = None


class BenefitInput(BaseModel):
    benefit: str
    category: Optional[str] = None


class ImageInput(BaseModel):
    image_url: str
    caption: Optional[str] = None
    is_primary: bool = False


class RemedyFields(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    description: Optional[str] = None
    summary: Optional[str] = None
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    region: Optional[str] = None
    origin_story: Optional[str] = None
    preparation_time: Optional[int] = None
    cooking_time: Optional[int] = None
    servings: Optional[int] = None
    difficulty: Optional[str] = None
    safety_warnings: Optional[str] = None
    contraindications: Optional[str] = None
    status: Optional[str] = None
    ingredients: Optional[List[IngredientInput]] = None
    steps: Optional[List[StepInput]] = None
    benefits: Optional[List[BenefitInput]] = None
    images: Optional[List[ImageInput]] = None


def _merge(single: Optional[str], many: Optional[List[str]]) -> List[str]:
    values = list(many or [])
    if single:
        values.insert(0, single)
    return values


@router.get("")
async def list_remedies(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    category_id: Optional[str] = None,
    categories: Optional[List[str]] = Query(default=None),
    region: Optional[str] = None,
    regions: Optional[List[str]] = Query(default=None),
    difficulty: Optional[str] = None,
    difficulties: Optional[List[str]] = Query(default=None),
    trust_level_min: Optional[int] = Query(default=None, ge=0, le=4),
    preparation_time_max: Optional[int] = Query(default=None, ge=0),
    ingredients: Optional[List[str]] = Query(default=None),
    benefits: Optional[List[str]] = Query(default=None),
    featured: bool = False,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    query = validate_search_query(search)
    filters = RemedyFilters(
        query=query,
        category_ids=_merge(category_id, categories),
        regions=_merge(region, regions),
        difficulties=_merge(difficulty, difficulties),
        trust_level_min=trust_level_min,
        preparation_time_max=preparation_time_max,
        ingredients=list(ingredients or []),
        benefits=list(benefits or []),
        featured=featured,
    )
    return await list_remedies_service(
        filters=filters,
        sort=normalize_sort(sort),
        window=resolve_page_window(page, limit),
        db=db,
    )


@router.post("", status_code=201)
async def create_remedy(
    body: RemedyFields,
    _rate_limit: None = Depends(rate_limit("remedy_create", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_remedy_service(
        author_id=auth.user_id,
        payload=body.model_dump(exclude_none=True),
        db=db,
    )


@router.get("/{remedy_id}")
async def get_remedy(
    remedy_id: str,
    background_tasks: BackgroundTasks,
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Hydrated remedy; the view counter is bumped after the response is sent."""
    payload = await get_remedy_detail_service(
        remedy_id,
        db,
        viewer_id=auth.user_id if auth else None,
    )
    background_tasks.add_task(increment_view_count, Remedy, remedy_id)
    return payload


@router.put("/{remedy_id}")
async def update_remedy(
    remedy_id: str,
    body: RemedyFields,
    _rate_limit: None = Depends(rate_limit("remedy_update", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await update_remedy_service(
        remedy_id=remedy_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_unset=True, exclude_none=True),
        db=db,
    )


@router.delete("/{remedy_id}")
async def delete_remedy(
    remedy_id: str,
    _rate_limit: None = Depends(rate_limit("remedy_delete", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await archive_remedy_service(remedy_id=remedy_id, user_id=auth.user_id, db=db)
