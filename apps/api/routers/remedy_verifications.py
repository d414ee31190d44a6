"""Remedy verification router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.remedy_verifications import (
    create_remedy_verification_service,
    list_remedy_verifications_service,
    update_remedy_verification_service,
)

router = APIRouter()


class RemedyVerificationRequest(BaseModel):
    verification_type: Optional[str] = None
    evidence_text: Optional[str] = None
    evidence_url: Optional[str] = None
    confidence_level: Optional[int] = None
    is_positive: Optional[bool] = None
    expertise_area: Optional[str] = None
    years_of_experience: Optional[int] = None
    location_context: Optional[str] = None
    additional_notes: Optional[str] = None


@router.get("/{remedy_id}/verifications")
async def list_verifications(
    remedy_id: str,
    verified_only: bool = True,
    verification_type: Optional[str] = Query(default=None, alias="type"),
    db: AsyncSession = Depends(get_db),
):
    return await list_remedy_verifications_service(
        remedy_id,
        db,
        verified_only=verified_only,
        verification_type=verification_type,
    )


@router.post("/{remedy_id}/verifications", status_code=201)
async def create_verification(
    remedy_id: str,
    body: RemedyVerificationRequest,
    _rate_limit: None = Depends(rate_limit("verification_create", limit=30, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_remedy_verification_service(
        remedy_id=remedy_id,
        user_id=auth.user_id,
        payload=body.model_dump(exclude_none=True),
        db=db,
    )


@router.put("/{remedy_id}/verifications")
async def update_verification(
    remedy_id: str,
    body: RemedyVerificationRequest,
    verification_id: Optional[str] = None,
    _rate_limit: None = Depends(rate_limit("verification_update", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    payload = body.model_dump(exclude_unset=True, exclude_none=True)
    payload.pop("verification_type", None)
    return await update_remedy_verification_service(
        remedy_id=remedy_id,
        verification_id=verification_id,
        user_id=auth.user_id,
        payload=payload,
        db=db,
    )
