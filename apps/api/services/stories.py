"""Story listing, detail, authoring and map data."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from config import settings
from models.category import Category
from models.location import Location
from models.story import Story, StoryImage, StorySource, StoryVerification
from services.filtering import (
    PUBLISHED,
    PageWindow,
    StoryFilters,
    fetch_filtered_page,
    page_envelope,
    story_conditions,
    story_relevance,
)
from services.geo import (
    INDONESIA_BOUNDS,
    INDONESIA_CENTER,
    MAP_STYLES,
    calculate_map_bounds,
    group_by_proximity,
    marker_payload,
    point_of,
    within_indonesia,
)
from services.payloads import (
    image_payload,
    location_payload,
    primary_image_url,
    source_payload,
    story_payload,
    story_verification_payload,
)
from services.procedures import get_stories_with_coordinates_simple

logger = logging.getLogger(__name__)

STORY_STATUSES = {"draft", "published", "under_review", "archived"}
CREATABLE_STATUSES = {"draft", "published"}
STORY_SOURCE_TYPES = {
    "book",
    "academic_paper",
    "oral_tradition",
    "museum_collection",
    "government_document",
    "newspaper",
    "website",
    "personal_account",
}
LOCATION_TYPES = {"country", "province", "regency", "city", "district", "village", "landmark"}
MUTABLE_STORY_FIELDS = (
    "title",
    "content",
    "summary",
    "category_id",
    "location_id",
    "time_period",
    "historical_figures",
    "latitude",
    "longitude",
    "status",
)
LOCATION_LIST_LIMIT = 100

STORY_SUMMARY_OPTIONS = (
    selectinload(Story.category),
    selectinload(Story.location),
    selectinload(Story.author),
    selectinload(Story.images),
)
STORY_DETAIL_OPTIONS = STORY_SUMMARY_OPTIONS + (
    selectinload(Story.sources),
    selectinload(Story.verifications).selectinload(StoryVerification.user),
)


def _normalize_text(value: Any) -> str:
    return str(value or "").strip()


async def load_story(
    db: AsyncSession,
    story_id: str,
    options: Sequence[Any] = STORY_SUMMARY_OPTIONS,
) -> Optional[Story]:
    result = await db.execute(
        select(Story)
        .options(*options)
        .where(Story.id == story_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_published_story(db: AsyncSession, story_id: str) -> str:
    result = await db.execute(select(Story.id).where(Story.id == story_id, Story.status == PUBLISHED))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Story not found")
    return story_id


def story_list_item(story: Story, score: Optional[int] = None) -> Dict[str, Any]:
    item = story_payload(story)
    item["primary_image"] = primary_image_url(story.images)
    if score is not None:
        item["relevance_score"] = score
    return item


async def list_stories_service(
    *,
    filters: StoryFilters,
    sort: str,
    window: PageWindow,
    db: AsyncSession,
) -> Dict[str, Any]:
    try:
        rows, total_count, scores = await fetch_filtered_page(
            db,
            Story,
            story_conditions(filters),
            sort=sort,
            window=window,
            options=STORY_SUMMARY_OPTIONS,
            score_fn=lambda story: story_relevance(story, filters.query),
        )
    except SQLAlchemyError as exc:
        logger.error("story_list_failed sort=%s page=%s: %s", sort, window.page, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch stories") from exc

    items = [
        story_list_item(story, scores.get(story.id, 0) if sort == "relevance" else None)
        for story in rows
    ]
    payload = page_envelope(items, total_count, window)
    if filters.query:
        payload["search_query"] = filters.query
    return payload


def story_detail_payload(story: Story) -> Dict[str, Any]:
    verifications = [v for v in story.verifications if v.is_verified]
    payload = story_payload(story)
    payload.update(
        {
            "images": [image_payload(image) for image in story.images],
            "primary_image": primary_image_url(story.images),
            "sources": [source_payload(source) for source in story.sources],
            "verifications": [story_verification_payload(v) for v in verifications],
        }
    )
    return payload


async def get_story_detail_service(
    story_id: str,
    db: AsyncSession,
    viewer_id: Optional[str] = None,
) -> Dict[str, Any]:
    story = await load_story(db, story_id, options=STORY_DETAIL_OPTIONS)
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")
    if story.status != PUBLISHED and (viewer_id is None or viewer_id != story.author_id):
        raise HTTPException(status_code=404, detail="Story not found")
    return {"story": story_detail_payload(story)}


def _build_children(story_id: str, payload: Dict[str, Any]) -> List[Any]:
    children: List[Any] = []
    if payload.get("images") is not None:
        for index, row in enumerate(payload["images"], start=1):
            url = _normalize_text(row.get("image_url"))
            if not url:
                raise HTTPException(status_code=400, detail="Each image requires 'image_url'")
            children.append(
                StoryImage(
                    story_id=story_id,
                    image_url=url,
                    caption=row.get("caption"),
                    is_primary=bool(row.get("is_primary")),
                    order_index=index,
                )
            )
    if payload.get("sources") is not None:
        for row in payload["sources"]:
            source_type = _normalize_text(row.get("source_type"))
            if source_type not in STORY_SOURCE_TYPES:
                raise HTTPException(status_code=400, detail="Invalid source type")
            children.append(
                StorySource(
                    story_id=story_id,
                    source_type=source_type,
                    source_title=row.get("source_title"),
                    source_author=row.get("source_author"),
                    source_url=row.get("source_url"),
                    source_description=row.get("source_description"),
                )
            )
    return children


async def _ensure_references(db: AsyncSession, payload: Dict[str, Any]) -> None:
    if payload.get("category_id"):
        result = await db.execute(select(Category.id).where(Category.id == payload["category_id"]))
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="Unknown category_id")
    if payload.get("location_id"):
        result = await db.execute(select(Location.id).where(Location.id == payload["location_id"]))
        if result.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="Unknown location_id")


def _check_coordinates(latitude: Any, longitude: Any) -> None:
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise HTTPException(status_code=400, detail="latitude and longitude must be provided together")
    if not within_indonesia((float(latitude), float(longitude))):
        raise HTTPException(status_code=400, detail="Coordinates must be within Indonesia")


async def create_story_service(
    *,
    author_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    missing = [key for key in ("title", "content", "category_id") if not _normalize_text(payload.get(key))]
    if missing:
        raise HTTPException(status_code=400, detail="Missing required fields: title, content, category_id")
    status = _normalize_text(payload.get("status")) or PUBLISHED
    if status not in CREATABLE_STATUSES:
        raise HTTPException(status_code=400, detail="status must be 'draft' or 'published'")
    _check_coordinates(payload.get("latitude"), payload.get("longitude"))
    await _ensure_references(db, payload)

    story = Story(
        id=str(uuid.uuid4()),
        title=_normalize_text(payload.get("title")),
        content=_normalize_text(payload.get("content")),
        summary=payload.get("summary"),
        author_id=author_id,
        category_id=payload["category_id"],
        location_id=payload.get("location_id"),
        time_period=payload.get("time_period"),
        historical_figures=list(payload.get("historical_figures") or []),
        latitude=payload.get("latitude"),
        longitude=payload.get("longitude"),
        metadata_json=dict(payload.get("metadata") or {}),
        status=status,
    )
    children = _build_children(story.id, payload)
    db.add(story)
    db.add_all(children)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("story_create_failed user=%s: %s", author_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create story") from exc

    created = await load_story(db, story.id, options=STORY_DETAIL_OPTIONS)
    logger.info("story_created user=%s story=%s status=%s", author_id, created.id, status)
    return {"story": story_detail_payload(created)}


async def _get_owned_story(db: AsyncSession, story_id: str, user_id: str) -> Story:
    story = await load_story(db, story_id, options=())
    if not story:
        raise HTTPException(status_code=404, detail="Story not found")
    if story.author_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return story


async def update_story_service(
    *,
    story_id: str,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    story = await _get_owned_story(db, story_id, user_id)

    for key in ("title", "content", "category_id"):
        if key in payload and not _normalize_text(payload.get(key)):
            raise HTTPException(status_code=400, detail=f"{key} cannot be empty")
    if "status" in payload and payload["status"] not in STORY_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    if "latitude" in payload or "longitude" in payload:
        _check_coordinates(
            payload.get("latitude", story.latitude),
            payload.get("longitude", story.longitude),
        )
    await _ensure_references(db, payload)

    children = _build_children(story_id, payload)
    for key in MUTABLE_STORY_FIELDS:
        if key in payload:
            setattr(story, key, payload[key])
    if "metadata" in payload:
        story.metadata_json = dict(payload.get("metadata") or {})

    try:
        if payload.get("images") is not None:
            await db.execute(delete(StoryImage).where(StoryImage.story_id == story_id))
        if payload.get("sources") is not None:
            await db.execute(delete(StorySource).where(StorySource.story_id == story_id))
        db.add_all(children)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("story_update_failed user=%s story=%s: %s", user_id, story_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update story") from exc

    updated = await load_story(db, story_id, options=STORY_DETAIL_OPTIONS)
    logger.info("story_updated user=%s story=%s fields=%s", user_id, story_id, sorted(payload.keys()))
    return {"story": story_detail_payload(updated)}


async def archive_story_service(*, story_id: str, user_id: str, db: AsyncSession) -> Dict[str, Any]:
    story = await _get_owned_story(db, story_id, user_id)
    story.status = "archived"
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("story_archive_failed user=%s story=%s: %s", user_id, story_id, exc)
        raise HTTPException(status_code=500, detail="Failed to delete story") from exc

    logger.info("story_archived user=%s story=%s", user_id, story_id)
    return {"message": "Story deleted successfully"}


def _cluster_payload(group: List[Story]) -> Dict[str, Any]:
    points = [point_of(story) for story in group]
    return {
        "count": len(group),
        "lat": sum(point[0] for point in points) / len(points),
        "lng": sum(point[1] for point in points) / len(points),
        "story_ids": [story.id for story in group],
    }


async def story_map_service(
    db: AsyncSession,
    category_id: Optional[str] = None,
    limit: int = 500,
) -> Dict[str, Any]:
    """Markers, proximity clusters and viewport data for stories with coordinates."""
    try:
        stories = await get_stories_with_coordinates_simple(db, category_id=category_id, limit=limit)
    except SQLAlchemyError as exc:
        logger.error("story_map_failed category=%s: %s", category_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch map stories") from exc

    groups = group_by_proximity(stories, settings.MAP_CLUSTER_THRESHOLD_KM)
    return {
        "markers": [marker_payload(story) for story in stories],
        "clusters": [_cluster_payload(group) for group in groups if len(group) > 1],
        "bounds": calculate_map_bounds([point_of(story) for story in stories]),
        "config": {
            "style": MAP_STYLES["STREETS"],
            "center": {"lat": INDONESIA_CENTER[0], "lng": INDONESIA_CENTER[1]},
            "max_bounds": INDONESIA_BOUNDS,
            "access_token": settings.MAPBOX_TOKEN or None,
        },
    }


async def list_locations_service(db: AsyncSession, location_type: Optional[str] = None) -> Dict[str, Any]:
    query = select(Location)
    if location_type:
        if location_type not in LOCATION_TYPES:
            raise HTTPException(status_code=400, detail="Invalid location type")
        query = query.where(Location.type == location_type)
    try:
        result = await db.execute(query.order_by(Location.name.asc(), Location.id.asc()).limit(LOCATION_LIST_LIMIT))
    except SQLAlchemyError as exc:
        logger.error("location_list_failed type=%s: %s", location_type, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch locations") from exc
    return {"locations": [location_payload(location) for location in result.scalars().all()]}
