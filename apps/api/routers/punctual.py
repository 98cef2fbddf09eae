"""Punctual intervention router."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_admin
from services.punctual import (
    create_punctual_intervention,
    delete_punctual_intervention,
    list_punctual_interventions,
    punctual_to_dict,
)

router = APIRouter()


class CreatePunctualRequest(BaseModel):
    client_name: str = ""
    hours: float = 0
    date: Optional[datetime] = None
    notes: Optional[str] = None
    images: List[str] = Field(default_factory=list)


class PunctualResponse(BaseModel):
    id: str
    client_name: str
    hours: float
    date: Optional[str] = None
    notes: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None


@router.get("", response_model=List[PunctualResponse])
async def get_punctual(
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_punctual_interventions(db)


@router.post("", response_model=PunctualResponse, status_code=201)
async def post_punctual(
    request: CreatePunctualRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    item = await create_punctual_intervention(
        db,
        client_name=request.client_name,
        hours=request.hours,
        date=request.date,
        notes=request.notes,
        images=request.images,
    )
    return punctual_to_dict(item)


@router.delete("/{item_id}")
async def remove_punctual(
    item_id: str,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await delete_punctual_intervention(db, item_id)
    return {"deleted": item_id}
