"""Location lookup router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.stories import list_locations_service

router = APIRouter()


@router.get("")
async def list_locations(
    location_type: Optional[str] = Query(default=None, alias="type"),
    db: AsyncSession = Depends(get_db),
):
    return await list_locations_service(db, location_type=location_type)
