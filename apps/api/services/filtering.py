"""Filtering, relevance scoring, ordering and pagination for content listings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from sqlalchemy import and_, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.remedy import Remedy, RemedyBenefit, RemedyIngredient
from models.story import Story

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
PUBLISHED = "published"
SORT_ALIASES = {
    "most_viewed": "popularity",
    "most_verified": "verification_count",
}
SORT_OPTIONS = {
    "newest",
    "oldest",
    "trust_level",
    "verification_count",
    "popularity",
    "alphabetical",
    "relevance",
}
REMEDY_RELEVANCE_WEIGHTS = {"title": 3, "subtitle": 2, "region": 1, "category": 2}
STORY_RELEVANCE_WEIGHTS = {"title": 3, "summary": 2, "location": 1, "category": 2}


@dataclass
class RemedyFilters:
    query: Optional[str] = None
    category_ids: List[str] = field(default_factory=list)
    regions: List[str] = field(default_factory=list)
    difficulties: List[str] = field(default_factory=list)
    trust_level_min: Optional[int] = None
    preparation_time_max: Optional[int] = None
    ingredients: List[str] = field(default_factory=list)
    benefits: List[str] = field(default_factory=list)
    featured: bool = False


@dataclass
class StoryFilters:
    query: Optional[str] = None
    category_ids: List[str] = field(default_factory=list)
    location_ids: List[str] = field(default_factory=list)
    time_periods: List[str] = field(default_factory=list)
    trust_level_min: Optional[int] = None


@dataclass
class PageWindow:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _clean_values(values: Optional[Iterable[Any]]) -> List[str]:
    cleaned: List[str] = []
    for value in values or []:
        text = str(value or "").strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def validate_search_query(query: Optional[str], *, required: bool = False) -> Optional[str]:
    """Return the trimmed query, or raise 400 when it is too short."""
    text = str(query or "").strip()
    if not text:
        if required:
            raise HTTPException(
                status_code=400,
                detail=f"Search query must be at least {MIN_QUERY_LENGTH} characters long",
            )
        return None
    if len(text) < MIN_QUERY_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Search query must be at least {MIN_QUERY_LENGTH} characters long",
        )
    return text


def normalize_sort(sort: Optional[str], default: str = "newest") -> str:
    key = str(sort or "").strip().lower() or default
    key = SORT_ALIASES.get(key, key)
    if key not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported sort option: {sort}")
    return key


def resolve_page_window(page: Optional[int], limit: Optional[int], default_limit: Optional[int] = None) -> PageWindow:
    resolved_page = 1 if page is None else int(page)
    resolved_limit = int(default_limit or settings.DEFAULT_PAGE_SIZE) if limit is None else int(limit)
    if resolved_page < 1:
        raise HTTPException(status_code=400, detail="page must be >= 1")
    if resolved_limit < 1 or resolved_limit > settings.MAX_PAGE_SIZE:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")
    return PageWindow(page=resolved_page, limit=resolved_limit)


def text_match(columns: Sequence[Any], query: str):
    """Case-insensitive substring match across columns (logical OR)."""
    return or_(*[column.icontains(query, autoescape=True) for column in columns])


def _child_text_exists(child_column: Any, parent_fk: Any, needles: List[str]):
    return (
        select(child_column)
        .where(
            parent_fk == Remedy.id,
            or_(*[child_column.icontains(needle, autoescape=True) for needle in needles]),
        )
        .exists()
    )


def remedy_conditions(filters: RemedyFilters) -> List[Any]:
    conditions: List[Any] = [Remedy.status == PUBLISHED]
    if filters.query:
        conditions.append(
            text_match([Remedy.title, Remedy.subtitle, Remedy.summary, Remedy.description], filters.query)
        )
    category_ids = _clean_values(filters.category_ids)
    if category_ids:
        conditions.append(Remedy.category_id.in_(category_ids))
    regions = _clean_values(filters.regions)
    if regions:
        conditions.append(Remedy.region.in_(regions))
    difficulties = _clean_values(filters.difficulties)
    if difficulties:
        conditions.append(Remedy.difficulty.in_(difficulties))
    if filters.trust_level_min is not None:
        conditions.append(Remedy.trust_level >= filters.trust_level_min)
    if filters.preparation_time_max is not None:
        conditions.append(Remedy.preparation_time <= filters.preparation_time_max)
    if filters.featured:
        conditions.append(Remedy.featured.is_(True))
    ingredients = _clean_values(filters.ingredients)
    if ingredients:
        conditions.append(_child_text_exists(RemedyIngredient.name, RemedyIngredient.remedy_id, ingredients))
    benefits = _clean_values(filters.benefits)
    if benefits:
        conditions.append(_child_text_exists(RemedyBenefit.benefit, RemedyBenefit.remedy_id, benefits))
    return conditions


def story_conditions(filters: StoryFilters) -> List[Any]:
    conditions: List[Any] = [Story.status == PUBLISHED]
    if filters.query:
        conditions.append(text_match([Story.title, Story.summary, Story.content], filters.query))
    category_ids = _clean_values(filters.category_ids)
    if category_ids:
        conditions.append(Story.category_id.in_(category_ids))
    location_ids = _clean_values(filters.location_ids)
    if location_ids:
        conditions.append(Story.location_id.in_(location_ids))
    time_periods = _clean_values(filters.time_periods)
    if time_periods:
        conditions.append(Story.time_period.in_(time_periods))
    if filters.trust_level_min is not None:
        conditions.append(Story.trust_level >= filters.trust_level_min)
    return conditions


def ordering(sort: str, model: Any) -> List[Any]:
    """Order clauses for a normalized sort key; always ends with id for stable paging."""
    clauses: List[Any]
    if sort == "oldest":
        clauses = [model.created_at.asc()]
    elif sort == "trust_level":
        clauses = [model.trust_level.desc()]
    elif sort == "verification_count":
        clauses = [model.verification_count.desc()]
    elif sort == "popularity":
        clauses = [model.view_count.desc(), model.verification_count.desc()]
    elif sort == "alphabetical":
        clauses = [model.title.asc()]
    elif sort == "relevance":
        clauses = [model.trust_level.desc()]
    else:
        clauses = [model.created_at.desc(), model.verification_count.desc()]
    clauses.append(model.id.asc())
    return clauses


def relevance_score(query: Optional[str], fields: Iterable[Tuple[Optional[str], int]]) -> int:
    """Sum the weight of every field containing the query (case-insensitive)."""
    needle = str(query or "").strip().lower()
    if not needle:
        return 0
    score = 0
    for value, weight in fields:
        if value and needle in str(value).lower():
            score += weight
    return score


def remedy_relevance(remedy: Remedy, query: Optional[str]) -> int:
    weights = REMEDY_RELEVANCE_WEIGHTS
    category_name = remedy.category.name if remedy.category else None
    return relevance_score(
        query,
        [
            (remedy.title, weights["title"]),
            (remedy.subtitle, weights["subtitle"]),
            (remedy.region, weights["region"]),
            (category_name, weights["category"]),
        ],
    )


def story_relevance(story: Story, query: Optional[str]) -> int:
    weights = STORY_RELEVANCE_WEIGHTS
    return relevance_score(
        query,
        [
            (story.title, weights["title"]),
            (story.summary, weights["summary"]),
            (story.location.name if story.location else None, weights["location"]),
            (story.category.name if story.category else None, weights["category"]),
        ],
    )


def rank_by_relevance(rows: Sequence[Any], score_fn: Callable[[Any], int]) -> List[Tuple[Any, int]]:
    scored = [(row, score_fn(row)) for row in rows]
    scored.sort(key=lambda pair: (-pair[1], -int(pair[0].trust_level or 0), str(pair[0].id)))
    return scored


def page_envelope(items: List[Dict[str, Any]], total_count: int, window: PageWindow) -> Dict[str, Any]:
    return {
        "items": items,
        "total_count": total_count,
        "page": window.page,
        "per_page": window.limit,
        "has_next_page": total_count > window.offset + window.limit,
    }


async def fetch_filtered_page(
    db: AsyncSession,
    model: Any,
    conditions: List[Any],
    *,
    sort: str,
    window: PageWindow,
    options: Sequence[Any] = (),
    score_fn: Optional[Callable[[Any], int]] = None,
) -> Tuple[List[Any], int, Dict[str, int]]:
    """Return (page rows, total matching count, relevance scores by id)."""
    count_result = await db.execute(select(func.count()).select_from(model).where(and_(*conditions)))
    total_count = int(count_result.scalar() or 0)

    scores: Dict[str, int] = {}
    if sort == "relevance" and score_fn is not None:
        result = await db.execute(select(model).options(*options).where(*conditions))
        ranked = rank_by_relevance(result.scalars().all(), score_fn)
        page_rows = [row for row, _ in ranked[window.offset:window.offset + window.limit]]
        scores = {str(row.id): score for row, score in ranked}
    else:
        result = await db.execute(
            select(model)
            .options(*options)
            .where(*conditions)
            .order_by(*ordering(sort, model))
            .offset(window.offset)
            .limit(window.limit)
        )
        page_rows = list(result.scalars().all())

    logger.debug(
        "filtered_page model=%s sort=%s page=%s limit=%s total=%s",
        model.__tablename__,
        sort,
        window.page,
        window.limit,
        total_count,
    )
    return page_rows, total_count, scores
