"""Voucher (bono) router."""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_client_scope, get_auth_context, require_admin
from routers.interventions import InterventionResponse
from services.bonos import (
    bono_to_dict,
    create_bono,
    delete_bono,
    get_bono_or_404,
    get_client_summary,
    list_bonos,
    list_client_bonos,
    update_bono,
)
from services.interventions import list_bono_interventions

router = APIRouter()

VoucherStatus = Literal["active", "depleted", "expired"]


class CreateBonoRequest(BaseModel):
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    service: str = ""
    hours: float = 0
    issue_date: date = Field(default_factory=date.today)
    expiry_date: Optional[date] = None
    never_expires: bool = False
    status: VoucherStatus = "active"
    notes: Optional[str] = None


class UpdateBonoRequest(BaseModel):
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    service: Optional[str] = None
    hours: Optional[float] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    never_expires: Optional[bool] = None
    status: Optional[VoucherStatus] = None
    notes: Optional[str] = None


class BonoResponse(BaseModel):
    id: str
    client_id: Optional[str] = None
    client_name: str
    service: str
    hours: float
    hours_used: float
    hours_remaining: float
    issue_date: Optional[str] = None
    expiry_date: Optional[str] = None
    never_expires: bool
    status: str
    stored_status: str
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ClientSummaryResponse(BaseModel):
    client_id: str
    total_hours: float
    used_hours: float
    remaining_hours: float
    active_bonos: int
    bono_count: int


@router.get("", response_model=List[BonoResponse])
async def get_bonos(
    status: Literal["all", "active", "depleted", "expired"] = Query(default="all"),
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All vouchers with their current display status."""
    return await list_bonos(db, status_filter=status)


@router.post("", response_model=BonoResponse, status_code=201)
async def post_bono(
    request: CreateBonoRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    bono = await create_bono(db, request.model_dump())
    return bono_to_dict(bono)


@router.get("/mine", response_model=List[BonoResponse])
async def get_my_bonos(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await list_client_bonos(db, auth.user_id)


@router.get("/mine/summary", response_model=ClientSummaryResponse)
async def get_my_summary(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_client_summary(db, auth.user_id)


@router.get("/client/{client_id}", response_model=List[BonoResponse])
async def get_client_bonos(
    client_id: str,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_client_bonos(db, client_id)


@router.get("/{bono_id}", response_model=BonoResponse)
async def get_bono(
    bono_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    bono = await get_bono_or_404(db, bono_id)
    ensure_client_scope(auth, bono.client_id)
    return bono_to_dict(bono)


@router.get("/{bono_id}/interventions", response_model=List[InterventionResponse])
async def get_bono_interventions(
    bono_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    bono = await get_bono_or_404(db, bono_id)
    ensure_client_scope(auth, bono.client_id)
    return await list_bono_interventions(db, bono_id)


@router.put("/{bono_id}", response_model=BonoResponse)
async def put_bono(
    bono_id: str,
    request: UpdateBonoRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Edit a voucher; consumption so far is kept and remaining hours recomputed."""
    bono = await update_bono(db, bono_id, request.model_dump(exclude_unset=True))
    return bono_to_dict(bono)


@router.delete("/{bono_id}")
async def remove_bono(
    bono_id: str,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await delete_bono(db, bono_id)
    return {"deleted": bono_id}
