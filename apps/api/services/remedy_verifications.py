"""Typed remedy attestations with per-type uniqueness and summary counts."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from models.remedy import Remedy, RemedyVerification
from services.payloads import remedy_verification_payload
from services.procedures import increment_verification_count
from services.remedies import REMEDY_VERIFICATION_TYPES, get_published_remedy

logger = logging.getLogger(__name__)

EDITABLE_VERIFICATION_FIELDS = (
    "evidence_text",
    "evidence_url",
    "confidence_level",
    "is_positive",
    "expertise_area",
    "years_of_experience",
    "location_context",
    "additional_notes",
)


def _validate_confidence(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        level = int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Confidence level must be between 1 and 5")
    if level < 1 or level > 5:
        raise HTTPException(status_code=400, detail="Confidence level must be between 1 and 5")
    return level


def verification_summary(verifications: Sequence[RemedyVerification]) -> Dict[str, int]:
    summary = {kind: 0 for kind in REMEDY_VERIFICATION_TYPES}
    for verification in verifications:
        if verification.verification_type in summary:
            summary[verification.verification_type] += 1
    summary["total"] = len(verifications)
    summary["positive"] = sum(1 for v in verifications if v.is_positive)
    summary["concerns"] = summary["total"] - summary["positive"]
    return summary


async def _load_verification(db: AsyncSession, verification_id: str) -> Optional[RemedyVerification]:
    result = await db.execute(
        select(RemedyVerification)
        .options(selectinload(RemedyVerification.user))
        .where(RemedyVerification.id == verification_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_remedy_verifications_service(
    remedy_id: str,
    db: AsyncSession,
    verified_only: bool = True,
    verification_type: Optional[str] = None,
) -> Dict[str, Any]:
    await get_published_remedy(db, remedy_id)
    if verification_type and verification_type not in REMEDY_VERIFICATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid verification type")

    query = (
        select(RemedyVerification)
        .options(selectinload(RemedyVerification.user))
        .where(RemedyVerification.remedy_id == remedy_id)
    )
    if verified_only:
        query = query.where(RemedyVerification.is_verified.is_(True))
    if verification_type:
        query = query.where(RemedyVerification.verification_type == verification_type)
    query = query.order_by(RemedyVerification.created_at.desc(), RemedyVerification.id.asc())

    try:
        result = await db.execute(query)
    except SQLAlchemyError as exc:
        logger.error("remedy_verification_list_failed remedy=%s: %s", remedy_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch verifications") from exc

    verifications: List[RemedyVerification] = list(result.scalars().all())
    return {
        "verifications": [remedy_verification_payload(v) for v in verifications],
        "summary": verification_summary(verifications),
    }


async def create_remedy_verification_service(
    *,
    remedy_id: str,
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    await get_published_remedy(db, remedy_id)

    verification_type = str(payload.get("verification_type") or "").strip()
    evidence_text = str(payload.get("evidence_text") or "").strip()
    if not verification_type or not evidence_text:
        raise HTTPException(status_code=400, detail="Missing required fields: verification_type, evidence_text")
    if verification_type not in REMEDY_VERIFICATION_TYPES:
        raise HTTPException(status_code=400, detail="Invalid verification type")
    confidence_level = _validate_confidence(payload.get("confidence_level"))

    duplicate_message = f"You have already submitted a {verification_type} verification for this remedy"
    existing = await db.execute(
        select(RemedyVerification.id).where(
            RemedyVerification.remedy_id == remedy_id,
            RemedyVerification.user_id == user_id,
            RemedyVerification.verification_type == verification_type,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=400, detail=duplicate_message)

    verification = RemedyVerification(
        remedy_id=remedy_id,
        user_id=user_id,
        verification_type=verification_type,
        evidence_text=evidence_text,
        evidence_url=payload.get("evidence_url"),
        confidence_level=confidence_level,
        is_positive=payload.get("is_positive", True) is not False,
        expertise_area=payload.get("expertise_area"),
        years_of_experience=payload.get("years_of_experience"),
        location_context=payload.get("location_context"),
        additional_notes=payload.get("additional_notes"),
        is_verified=False,
    )
    db.add(verification)
    try:
        await db.flush()
        await increment_verification_count(db, Remedy, remedy_id)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise HTTPException(status_code=400, detail=duplicate_message) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("remedy_verification_create_failed user=%s remedy=%s: %s", user_id, remedy_id, exc)
        raise HTTPException(status_code=500, detail="Failed to create verification") from exc

    created = await _load_verification(db, verification.id)
    logger.info(
        "remedy_verification_created user=%s remedy=%s type=%s",
        user_id,
        remedy_id,
        verification_type,
    )
    return {
        "verification": remedy_verification_payload(created),
        "message": "Verification submitted successfully. It will be reviewed by our moderators.",
    }


async def update_remedy_verification_service(
    *,
    remedy_id: str,
    verification_id: Optional[str],
    user_id: str,
    payload: Dict[str, Any],
    db: AsyncSession,
) -> Dict[str, Any]:
    if not verification_id:
        raise HTTPException(status_code=400, detail="Missing verification_id parameter")

    verification = await _load_verification(db, verification_id)
    if not verification or verification.remedy_id != remedy_id:
        raise HTTPException(status_code=404, detail="Verification not found")
    if verification.user_id != user_id:
        raise HTTPException(status_code=403, detail="Forbidden")

    if "evidence_text" in payload and not str(payload.get("evidence_text") or "").strip():
        raise HTTPException(status_code=400, detail="evidence_text cannot be empty")
    if "confidence_level" in payload:
        payload = dict(payload, confidence_level=_validate_confidence(payload.get("confidence_level")))

    for key in EDITABLE_VERIFICATION_FIELDS:
        if key in payload:
            setattr(verification, key, payload[key])
    verification.is_verified = False

    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("remedy_verification_update_failed user=%s verification=%s: %s", user_id, verification_id, exc)
        raise HTTPException(status_code=500, detail="Failed to update verification") from exc

    updated = await _load_verification(db, verification_id)
    logger.info("remedy_verification_updated user=%s verification=%s", user_id, verification_id)
    return {
        "verification": remedy_verification_payload(updated),
        "message": "Verification updated successfully. It will be reviewed again.",
    }
