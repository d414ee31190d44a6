"""Remedy testimonial router."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.testimonials import (
    create_testimonial_service,
    list_testimonials_service,
    update_testimonial_service,
)

router = APIRouter()


class TestimonialRequest(BaseModel):
    testimonial: Optional[str] = None
    rating: Optional[int] = None
    name: Optional[str] = None
    location: Optional[str] = None
    usage_duration: Optional[str] = None
    health_condition: Optional[str] = None
    results_experienced: Optional[str] = None
    would_recommend: Optional[bool] = None


@router.get("/{remedy_id}/testimonials")
async def list_testimonials(
    remedy_id: str,
    verified_only: bool = True,
    db: AsyncSession = Depends(get_db),
):
    return await list_testimonials_service(remedy_id, db, verified_only=verified_only)


@router.post("/{remedy_id}/testimonials", status_code=201)
async def create_testimonial(
    remedy_id: str,
    body: TestimonialRequest,
    _rate_limit: None = Depends(rate_limit("testimonial_create", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_testimonial_service(
        remedy_id=remedy_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_none=True),
        db=db,
    )


@router.put("/{remedy_id}/testimonials")
async def update_testimonial(
    remedy_id: str,
    body: TestimonialRequest,
    testimonial_id: Optional[str] = None,
    _rate_limit: None = Depends(rate_limit("testimonial_update", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await update_testimonial_service(
        remedy_id=remedy_id,
        testimonial_id=testimonial_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_unset=True, exclude_none=True),
        db=db,
    )
