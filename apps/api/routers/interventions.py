"""Intervention (usage record) router."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context, require_admin
from services.bonos import bono_to_dict
from services.interventions import (
    delete_usage,
    edit_usage,
    intervention_to_dict,
    list_client_interventions,
    record_usage,
)

router = APIRouter()


class CreateInterventionRequest(BaseModel):
    bono_id: str = Field(min_length=1)
    hours_used: float = Field(gt=0)
    client_id: Optional[str] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    allow_overdraft: bool = False


class UpdateInterventionRequest(BaseModel):
    notes: Optional[str] = None
    date: Optional[datetime] = None
    images: Optional[List[str]] = None
    hours_used: Optional[float] = Field(default=None, gt=0)
    allow_overdraft: bool = False


class InterventionResponse(BaseModel):
    id: str
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    bono_id: str
    hours_used: float
    date: Optional[str] = None
    notes: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _usage_payload(result: dict) -> dict:
    bono = result.get("bono")
    return {
        "intervention": intervention_to_dict(result["intervention"]),
        "bono": bono_to_dict(bono) if bono is not None else None,
    }


@router.post("", status_code=201)
async def create_intervention(
    request: CreateInterventionRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Record hours against a voucher and return both updated records."""
    result = await record_usage(
        db,
        bono_id=request.bono_id,
        hours_used=request.hours_used,
        date=request.date,
        notes=request.notes,
        images=request.images,
        client_id=request.client_id,
        allow_overdraft=request.allow_overdraft,
    )
    return _usage_payload(result)


@router.get("", response_model=List[InterventionResponse])
async def get_client_interventions(
    client_id: str = Query(min_length=1),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_client_interventions(db, client_id)


@router.get("/mine", response_model=List[InterventionResponse])
async def get_my_interventions(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await list_client_interventions(db, auth.user_id)


@router.patch("/{intervention_id}")
async def patch_intervention(
    intervention_id: str,
    request: UpdateInterventionRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    fields = request.model_dump(exclude_unset=True, exclude={"allow_overdraft"})
    result = await edit_usage(db, intervention_id, fields, allow_overdraft=request.allow_overdraft)
    return _usage_payload(result)


@router.delete("/{intervention_id}")
async def remove_intervention(
    intervention_id: str,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a usage record and give its hours back to the voucher."""
    result = await delete_usage(db, intervention_id)
    bono = result.get("bono")
    return {
        "deleted": result["intervention_id"],
        "hours_restored": result["hours_restored"],
        "bono": bono_to_dict(bono) if bono is not None else None,
    }
