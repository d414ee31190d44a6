"""Story router: listing, map, authoring and community verifications."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.story import Story
from routers.auth_scope import AuthContext, get_auth_context, get_optional_auth_context
from routers.rate_limit import rate_limit
from services.categories import list_story_categories_service
from services.filtering import StoryFilters, normalize_sort, resolve_page_window, validate_search_query
from services.procedures import increment_view_count
from services.stories import (
    archive_story_service,
    create_story_service,
    get_story_detail_service,
    list_stories_service,
    story_map_service,
    update_story_service,
)
from services.story_verifications import (
    create_story_verification_service,
    list_story_verifications_service,
    update_story_verification_service,
)

router = APIRouter()


class StoryImageInput(BaseModel):
    image_url: str
    caption: Optional[str] = None
    is_primary: bool = False


class StorySourceInput(BaseModel):
    source_type: str
    source_title: Optional[str] = None
    source_author: Optional[str] = None
    source_url: Optional[str] = None
    source_description: Optional[str] = None


class StoryFields(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    summary: Optional[str] = None
    category_id: Optional[str] = None
    location_id: Optional[str] = None
    time_period: Optional[str] = None
    historical_figures: Optional[List[str]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    metadata: Optional[Dict[str, Any]] = None
    status: Optional[str] = None
    images: Optional[List[StoryImageInput]] = None
    sources: Optional[List[StorySourceInput]] = None


class StoryVerificationRequest(BaseModel):
    verification_type: Optional[str] = None
    evidence_text: Optional[str] = None
    evidence_url: Optional[str] = None


@router.get("")
async def list_stories(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    category_id: Optional[str] = None,
    categories: Optional[List[str]] = Query(default=None),
    location_id: Optional[str] = None,
    locations: Optional[List[str]] = Query(default=None),
    time_period: Optional[str] = None,
    time_periods: Optional[List[str]] = Query(default=None),
    trust_level_min: Optional[int] = Query(default=None, ge=0, le=4),
    search: Optional[str] = None,
    sort: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    filters = StoryFilters(
        query=validate_search_query(search),
        category_ids=([category_id] if category_id else []) + list(categories or []),
        location_ids=([location_id] if location_id else []) + list(locations or []),
        time_periods=([time_period] if time_period else []) + list(time_periods or []),
        trust_level_min=trust_level_min,
    )
    return await list_stories_service(
        filters=filters,
        sort=normalize_sort(sort),
        window=resolve_page_window(page, limit),
        db=db,
    )


@router.post("", status_code=201)
async def create_story(
    body: StoryFields,
    _rate_limit: None = Depends(rate_limit("story_create", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_story_service(author_id=auth.user_id, payload=body.model_dump(exclude_none=True), db=db)


@router.get("/categories")
async def list_categories(include_count: bool = False, db: AsyncSession = Depends(get_db)):
    return await list_story_categories_service(db, include_count=include_count)


@router.get("/map")
async def story_map(
    category_id: Optional[str] = None,
    limit: int = Query(default=500, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    return await story_map_service(db, category_id=category_id, limit=limit)


@router.get("/{story_id}")
async def get_story(
    story_id: str,
    background_tasks: BackgroundTasks,
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
):
    payload = await get_story_detail_service(story_id, db, viewer_id=auth.user_id if auth else None)
    background_tasks.add_task(increment_view_count, Story, story_id)
    return payload


@router.put("/{story_id}")
async def update_story(
    story_id: str,
    body: StoryFields,
    _rate_limit: None = Depends(rate_limit("story_update", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await update_story_service(
        story_id=story_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_unset=True, exclude_none=True),
        db=db,
    )


@router.delete("/{story_id}")
async def delete_story(
    story_id: str,
    _rate_limit: None = Depends(rate_limit("story_delete", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await archive_story_service(story_id=story_id, user_id=auth.user_id, db=db)


@router.get("/{story_id}/verifications")
async def list_verifications(
    story_id: str,
    verified_only: bool = True,
    db: AsyncSession = Depends(get_db),
):
    return await list_story_verifications_service(story_id, db, verified_only=verified_only)


@router.post("/{story_id}/verifications", status_code=201)
async def create_verification(
    story_id: str,
    body: StoryVerificationRequest,
    _rate_limit: None = Depends(rate_limit("verification_create", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_story_verification_service(
        story_id=story_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_none=True),
        db=db,
    )


@router.put("/{story_id}/verifications")
async def update_verification(
    story_id: str,
    body: StoryVerificationRequest,
    verification_id: Optional[str] = None,
    _rate_limit: None = Depends(rate_limit("verification_update", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await update_story_verification_service(
        story_id=story_id,
        verification_id=verification_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_unset=True, exclude_none=True),
        db=db,
    )
