"""Remedy category router."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.categories import create_remedy_category_service, list_remedy_categories_service

router = APIRouter()


class CreateCategoryRequest(BaseModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None


@router.get("")
async def list_categories(include_count: bool = False, db: AsyncSession = Depends(get_db)):
    return await list_remedy_categories_service(db, include_count=include_count)


@router.post("", status_code=201)
async def create_category(
    body: CreateCategoryRequest,
    _rate_limit: None = Depends(rate_limit("category_create", limit=10, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_remedy_category_service(user_id=auth.user_id, payload=body.model_dump(), db=db)
