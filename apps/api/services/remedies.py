"""Remedy listing, detail hydration and author-scoped mutations."""

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
from models.category import RemedyCategory
from models.location import Location
from models.remedy import (
    Remedy,
    RemedyBenefit,
    RemedyImage,
    RemedyIngredient,
    RemedyStep,
    RemedyTestimonial,
    RemedyVerification,
)
from services.filtering import (
    PUBLISHED,
    PageWindow,
    RemedyFilters,
    fetch_filtered_page,
    page_envelope,
    remedy_conditions,
    remedy_relevance,
)
from services.payloads import (
    benefit_payload,
    image_payload,
    ingredient_payload,
    primary_image_url,
    remedy_payload,
    remedy_verification_payload,
    step_payload,
    testimonial_payload,
)
from services.procedures import calculate_remedy_rating

logger = logging.getLogger(__name__)

REMEDY_VERIFICATION_TYPES = (
    "family_tradition",
    "local_knowledge",
    "tried_personally",
    "cultural_authenticity",
    "ingredient_accuracy",
    "safety_concern",
    "medical_validation",
)
REMEDY_STATUSES = {"draft", "published", "under_review", "archived"}
CREATABLE_STATUSES = {"draft", "published"}
MUTABLE_REMEDY_FIELDS = (
    "title",
    "subtitle",
    "description",
    "summary",
    "category_id",
    "location_id",
    "region",
    "origin_story",
    "preparation_time",
    "cooking_time",
    "servings",
    "difficulty",
    "safety_warnings",
    "contraindications",
    "status",
)
LIST_PREVIEW_SIZE = 3

REMEDY_SUMMARY_OPTIONS = (
    selectinload(Remedy.category),
    selectinload(Remedy.location),
    selectinload(Remedy.author),
)
REMEDY_DETAIL_OPTIONS = REMEDY_SUMMARY_OPTIONS + (
    selectinload(Remedy.ingredients),
    selectinload(Remedy.steps),
    selectinload(Remedy.benefits),
    selectinload(Remedy.images),
    selectinload(Remedy.testimonials).selectinload(RemedyTestimonial.user),
    selectinload(Remedy.verifications).selectinload(RemedyVerification.user),
)


def _normalize_text(value: Any) -> str:
    return str(value or "").strip()


async def load_remedy(
    db: AsyncSession,
    remedy_id: str,
    options: Sequence[Any] = REMEDY_SUMMARY_OPTIONS,
) -> Optional[Remedy]:
    result = await db.execute(
        select(Remedy)
        .options(*options)
        .where(Remedy.id == remedy_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_published_remedy(db: AsyncSession, remedy_id: str) -> str:
    result = await db.execute(
        select(Remedy.id).where(Remedy.id == remedy_id, Remedy.status == PUBLISHED)
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Remedy not found")
    return remedy_id


async def _get_owned_remedy(db: AsyncSession, remedy_id: str, user_id: str) -> Remedy:
    remedy = await load_remedy(db, remedy_id, options=())
    if not remedy:
        raise HTTPException(status_code=404, detail="Remedy not found")
    if remedy.author_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return remedy


def verification_type_counts(verifications: Sequence[RemedyVerification]) -> Dict[str, int]:
    counts = {f"{kind}_count": 0 for kind in REMEDY_VERIFICATION_TYPES}
    for verification in verifications:
        key = f"{verification.verification_type}_count"
        if key in counts:
            counts[key] += 1
    counts["total_count"] = len(verifications)
    return counts


def average_rating(testimonials: Sequence[RemedyTestimonial]) -> float:
    if not testimonials:
        return 0
    return round(sum(int(t.rating or 0) for t in testimonials) / len(testimonials), 1)


async def _list_previews(db: AsyncSession, remedy_ids: List[str]) -> Dict[str, Dict[str, Any]]:
    """Batched primary image, main ingredients, benefits and rating for a page of remedies."""
    previews: Dict[str, Dict[str, Any]] = {
        remedy_id: {"images": [], "main_ingredients": [], "benefits": []} for remedy_id in remedy_ids
    }
    if not remedy_ids:
        return previews

    images_result = await db.execute(
        select(RemedyImage)
        .where(RemedyImage.remedy_id.in_(remedy_ids))
        .order_by(RemedyImage.remedy_id, RemedyImage.order_index)
    )
    for image in images_result.scalars().all():
        previews[image.remedy_id]["images"].append(image)

    ingredients_result = await db.execute(
        select(RemedyIngredient)
        .where(
            RemedyIngredient.remedy_id.in_(remedy_ids),
            RemedyIngredient.is_main_ingredient.is_(True),
        )
        .order_by(RemedyIngredient.remedy_id, RemedyIngredient.order_index)
    )
    for ingredient in ingredients_result.scalars().all():
        bucket = previews[ingredient.remedy_id]["main_ingredients"]
        if len(bucket) < LIST_PREVIEW_SIZE:
            bucket.append({"name": ingredient.name, "amount": ingredient.amount})

    benefits_result = await db.execute(
        select(RemedyBenefit)
        .where(RemedyBenefit.remedy_id.in_(remedy_ids))
        .order_by(RemedyBenefit.remedy_id, RemedyBenefit.order_index)
    )
    for benefit in benefits_result.scalars().all():
        bucket = previews[benefit.remedy_id]["benefits"]
        if len(bucket) < LIST_PREVIEW_SIZE:
            bucket.append({"benefit": benefit.benefit, "category": benefit.category})

    ratings = await calculate_remedy_rating(db, remedy_ids)
    for remedy_id, preview in previews.items():
        stats = ratings.get(remedy_id, {})
        preview["avg_rating"] = stats.get("avg_rating", 0)
        preview["testimonial_count"] = stats.get("count", 0)
    return previews


async def remedy_list_items(
    db: AsyncSession,
    remedies: Sequence[Remedy],
    scores: Optional[Dict[str, int]] = None,
) -> List[Dict[str, Any]]:
    previews = await _list_previews(db, [remedy.id for remedy in remedies])
    items: List[Dict[str, Any]] = []
    for remedy in remedies:
        preview = previews.get(remedy.id, {})
        item = remedy_payload(remedy)
        item.update(
            {
                "primary_image": primary_image_url(preview.get("images", [])),
                "main_ingredients": preview.get("main_ingredients", []),
                "benefits": preview.get("benefits", []),
                "avg_rating": preview.get("avg_rating", 0),
                "testimonial_count": preview.get("testimonial_count", 0),
            }
        )
        if scores is not None:
            item["relevance_score"] = scores.get(remedy.id, 0)
        items.append(item)
    return items


async def list_remedies_service(
    *,
    filters: RemedyFilters,
    sort: str,
    window: PageWindow,
    db: AsyncSession,
) -> Dict[str, Any]:
    try:
        rows, total_count, scores = await fetch_filtered_page(
            db,
            Remedy,
            remedy_conditions(filters),
            sort=sort,
            window=window,
            options=REMEDY_SUMMARY_OPTIONS,
            score_fn=lambda remedy: remedy_relevance(remedy, filters.query),
        )
        items = await remedy_list_items(db, rows, scores if sort == "relevance" else None)
    except SQLAlchemyError as exc:
        logger.error("remedy_list_failed sort=%s page=%s: %s", sort, window.page, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch remedies") from exc

    payload = page_envelope(items, total_count, window)
    if filters.query:
        payload["search_query"] = filters.query
    return payload


def remedy_detail_payload(remedy: Remedy) -> Dict[str, Any]:
    testimonials = [t for t in remedy.testimonials if t.is_verified]
    verifications = [v for v in remedy.verifications if v.is_verified]
    payload = remedy_payload(remedy, include_bio=True)
    payload.update(
        {
            "ingredients": [ingredient_payload(i) for i in remedy.ingredients],
            "steps": [step_payload(s) for s in remedy.steps],
            "benefits": [benefit_payload(b) for b in remedy.benefits],
            "images": [image_payload(i) for i in remedy.images],
            "testimonials": [testimonial_payload(t) for t in testimonials],
            "verifications": [remedy_verification_payload(v) for v in verifications],
            "verification_summary": verification_type_counts(verifications),
            "primary_image": primary_image_url(remedy.images),
            "main_ingredients": [ingredient_payload(i) for i in remedy.ingredients if i.is_main_ingredient],
            "avg_rating": average_rating(testimonials),
            "testimonial_count": len(testimonials),
        }
    )
    return payload


async def get_remedy_detail_service(
    remedy_id: str,
    db: AsyncSession,
    viewer_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Fully hydrated remedy; non-published remedies are visible to their author only."""
    remedy = await load_remedy(db, remedy_id, options=REMEDY_DETAIL_OPTIONS)
    if not remedy:
        raise HTTPException(status_code=404, detail="Remedy not found")
    if remedy.status != PUBLISHED and (viewer_id is None or viewer_id != remedy.author_id):
        raise HTTPException(status_code=404, detail="Remedy not found")
    return {"remedy": remedy_detail_payload(remedy)}


def _require_rows(rows: Optional[List[Dict[str, Any]]], key: str, label: str) -> List[Dict[str, Any]]:
    cleaned: List[Dict[str, Any]] = []
    for row in rows or []:
        if not _normalize_text(row.get(key)):
            raise HTTPException(status_code=400, detail=f"Each {label} requires '{key}'")
        cleaned.append(row)
    return cleaned


def _build_children(remedy_id: str, payload: Dict[str, Any]) -> List[Any]:
    """Child rows for every collection present in payload, indexed in submission order."""
    children: List[Any] = []
    if payload.get("ingredients") is not None:
        for index, row in enumerate(_require_rows(payload["ingredients"], "name", "ingredient"), start=1):
            children.append(
                RemedyIngredient(
                    remedy_id=remedy_id,
                    name=_normalize_text(row.get("name")),
                    amount=row.get("amount"),
                    unit=row.get("unit"),
                    notes=row.get("notes"),
                    is_main_ingredient=bool(row.get("is_main_ingredient")),
                    order_index=index,
                )
            )
    if payload.get("steps") is not None:
        for index, row in enumerate(_require_rows(payload["steps"], "instruction", "step"), start=1):
            children.append(
                RemedyStep(
                    remedy_id=remedy_id,
                    step_number=index,
                    instruction=_normalize_text(row.get("instruction")),
                    duration_minutes=row.get("duration_minutes"),
                    tips=row.get("tips"),
                )
            )
    if payload.get("benefits") is not None:
        for index, row in enumerate(_require_rows(payload["benefits"], "benefit", "benefit"), start=1):
            children.append(
                RemedyBenefit(
                    remedy_id=remedy_id,
                    benefit=_normalize_text(row.get("benefit")),
                    category=row.get("category"),
                    order_index=index,
                )
            )
    if payload.get("images") is not None:
        for index, row in enumerate(_require_rows(payload["images"], "image_url", "image"), start=1):
            children.append(
                RemedyImage(
                    remedy_id=remedy_id,
                    image_url=_normalize_text(row.get("image_url")),
                    caption=row.get("caption"),
                    is_primary=bool(row.get("is_primary")),
                    order_index=index,
                )
            )
    return children


async def _ensure_category(db: AsyncSession, category_id: str) -> None:
    result = await db.execute(select(RemedyCategory.id).where(RemedyCategory.id == category_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail="Unknown category_id")


async def _ensure_location(db: AsyncSession, location_id: str) -> None:
    result = await db.execute(select(Location.id).where(Location.id == location_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail="Unknown location_id")


async def create_remedy_service(
    *,
    author_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    """Insert a remedy and its child collections in a single transaction."""
    missing = [key for key in ("title", "description", "category_id") if not _normalize_text(payload.get(key))]
    if missing:
        raise HTTPException(
            status_code=400,
            detail="Missing required fields: title, description, category_id",
        )
    status = _normalize_text(payload.get("status")) or PUBLISHED
    if status not in CREATABLE_STATUSES:
        raise HTTPException(status_code=400, detail="status must be 'draft' or 'published'")
    await _ensure_category(db, payload["category_id"])
    if payload.get("location_id"):
        await _ensure_location(db, payload["location_id"])

    remedy = Remedy(
        id=str(uuid.uuid4()),
        title=_normalize_text(payload.get("title")),
        subtitle=payload.get("subtitle"),
        description=_normalize_text(payload.get("description")),
        summary=payload.get("summary"),
        author_id=author_id,
        category_id=payload["category_id"],
        location_id=payload.get("location_id"),
        region=payload.get("region"),
        origin_story=payload.get("origin_story"),
        preparation_time=payload.get("preparation_time"),
        cooking_time=payload.get("cooking_time"),
        servings=payload.get("servings"),
        difficulty=_normalize_text(payload.get("difficulty")) or settings.DEFAULT_REMEDY_DIFFICULTY,
        safety_warnings=payload.get("safety_warnings"),
        contraindications=payload.get("contraindications"),
        status=status,
    )
    children = _build_children(remedy.id, payload)
    db.add(remedy)
    db.add_all(children)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("remedy_create_failed user=%s: %s", author_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create remedy") from exc

    created = await load_remedy(db, remedy.id, options=REMEDY_DETAIL_OPTIONS)
    logger.info(
        "remedy_created user=%s remedy=%s ingredients=%s steps=%s",
        author_id,
        created.id,
        len(created.ingredients),
        len(created.steps),
    )
    return {"remedy": remedy_detail_payload(created)}


async def update_remedy_service(
    *,
    remedy_id: str,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    remedy = await _get_owned_remedy(db, remedy_id, user_id)

    for key in ("title", "description", "category_id"):
        if key in payload and not _normalize_text(payload.get(key)):
            raise HTTPException(status_code=400, detail=f"{key} cannot be empty")
    if "status" in payload and payload["status"] not in REMEDY_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    if payload.get("category_id") and payload["category_id"] != remedy.category_id:
        await _ensure_category(db, payload["category_id"])
    if payload.get("location_id") and payload["location_id"] != remedy.location_id:
        await _ensure_location(db, payload["location_id"])

    children = _build_children(remedy_id, payload)
    for key in MUTABLE_REMEDY_FIELDS:
        if key in payload:
            setattr(remedy, key, payload[key])

    try:
        # Supplied collections are replaced wholesale so indices stay contiguous.
        replaced = {
            "ingredients": RemedyIngredient,
            "steps": RemedyStep,
            "benefits": RemedyBenefit,
            "images": RemedyImage,
        }
        for key, model in replaced.items():
            if payload.get(key) is not None:
                await db.execute(delete(model).where(model.remedy_id == remedy_id))
        db.add_all(children)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("remedy_update_failed user=%s remedy=%s: %s", user_id, remedy_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update remedy") from exc

    updated = await load_remedy(db, remedy_id, options=REMEDY_DETAIL_OPTIONS)
    logger.info("remedy_updated user=%s remedy=%s fields=%s", user_id, remedy_id, sorted(payload.keys()))
    return {"remedy": remedy_detail_payload(updated)}


async def archive_remedy_service(*, remedy_id: str, user_id: str, db: AsyncSession) -> Dict[str, Any]:
    """Soft delete: flip status to archived; child rows are kept."""
    remedy = await _get_owned_remedy(db, remedy_id, user_id)
    remedy.status = "archived"
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("remedy_archive_failed user=%s remedy=%s: %s", user_id, remedy_id, exc)
        raise HTTPException(status_code=500, detail="Failed to delete remedy") from exc

    logger.info("remedy_archived user=%s remedy=%s", user_id, remedy_id)
    return {"message": "Remedy deleted successfully"}
