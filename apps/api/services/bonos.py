"""Voucher (bono) persistence and read-model helpers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.bono import Bono
from models.intervention import Intervention
from models.user import User
from services import store
from services.balance import (
    STATUS_ACTIVE,
    VOUCHER_STATUSES,
    VoucherValidationError,
    create_voucher,
    derive_display_status,
    edit_voucher,
)

logger = logging.getLogger(__name__)


def validation_http_error(exc: VoucherValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": "Datos del bono no válidos", "errors": exc.errors})


def bono_to_dict(bono: Bono, now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "id": bono.id,
        "client_id": bono.client_id,
        "client_name": bono.client_name,
        "service": bono.service,
        "hours": float(bono.hours or 0),
        "hours_used": float(bono.hours_used or 0),
        "hours_remaining": float(bono.hours_remaining or 0),
        "issue_date": bono.issue_date.isoformat() if bono.issue_date else None,
        "expiry_date": bono.expiry_date.isoformat() if bono.expiry_date else None,
        "never_expires": bool(bono.never_expires),
        "status": derive_display_status(bono, now),
        "stored_status": bono.status,
        "notes": bono.notes,
        "created_at": bono.created_at.isoformat() if bono.created_at else None,
        "updated_at": bono.updated_at.isoformat() if bono.updated_at else None,
    }


async def get_bono_or_404(db: AsyncSession, bono_id: str, *, for_update: bool = False) -> Bono:
    bono = await store.get_by_id(db, Bono, bono_id, for_update=for_update)
    if not bono:
        raise HTTPException(status_code=404, detail="Bono not found")
    return bono


async def list_bonos(
    db: AsyncSession,
    *,
    status_filter: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """All vouchers, newest issue first, filtered on display status."""
    if status_filter and status_filter != "all" and status_filter not in VOUCHER_STATUSES:
        raise HTTPException(status_code=422, detail=f"Unknown status filter: {status_filter}")

    current = now or datetime.now(timezone.utc)
    bonos = await store.get_all(db, Bono, order_by=[Bono.issue_date.desc(), Bono.created_at.desc()])
    payload = [bono_to_dict(bono, current) for bono in bonos]
    if status_filter and status_filter != "all":
        payload = [item for item in payload if item["status"] == status_filter]
    return payload


async def list_client_bonos(
    db: AsyncSession,
    client_id: str,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    current = now or datetime.now(timezone.utc)
    bonos = await store.get_by_filter(
        db,
        Bono,
        client_id=client_id,
        order_by=[Bono.issue_date.desc(), Bono.created_at.desc()],
    )
    return [bono_to_dict(bono, current) for bono in bonos]


async def get_client_summary(
    db: AsyncSession,
    client_id: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    bonos = await list_client_bonos(db, client_id, now)
    return {
        "client_id": client_id,
        "total_hours": round(sum(item["hours"] for item in bonos), 2),
        "used_hours": round(sum(item["hours_used"] for item in bonos), 2),
        "remaining_hours": round(sum(item["hours_remaining"] for item in bonos), 2),
        "active_bonos": sum(1 for item in bonos if item["status"] == STATUS_ACTIVE),
        "bono_count": len(bonos),
    }


async def _resolve_client(db: AsyncSession, data: Dict[str, Any]) -> Dict[str, Any]:
    client_id = data.get("client_id")
    if not client_id:
        return data
    client = await store.get_by_id(db, User, client_id)
    if not client:
        raise HTTPException(status_code=422, detail={"message": "Cliente no encontrado", "errors": {"client_id": client_id}})
    if not str(data.get("client_name") or "").strip():
        data = {**data, "client_name": client.name or client.email}
    return data


async def create_bono(db: AsyncSession, data: Dict[str, Any]) -> Bono:
    data = await _resolve_client(db, data)
    try:
        values = create_voucher(data)
    except VoucherValidationError as exc:
        raise validation_http_error(exc) from exc

    bono = store.create_record(db, Bono, values)
    await db.commit()
    await db.refresh(bono)
    logger.info("bono_created id=%s client=%s hours=%s", bono.id, bono.client_id, bono.hours)
    return bono


async def update_bono(db: AsyncSession, bono_id: str, data: Dict[str, Any]) -> Bono:
    bono = await get_bono_or_404(db, bono_id, for_update=True)
    data = await _resolve_client(db, data)
    try:
        values = edit_voucher(bono, data)
    except VoucherValidationError as exc:
        raise validation_http_error(exc) from exc

    owner_changed = (values["client_id"], values["client_name"]) != (bono.client_id, bono.client_name)
    store.update_record(bono, values)
    if owner_changed:
        await db.execute(
            update(Intervention)
            .where(Intervention.bono_id == bono.id)
            .values(client_id=bono.client_id, client_name=bono.client_name)
        )
    await db.commit()
    await db.refresh(bono)
    logger.info(
        "bono_updated id=%s hours=%s used=%s remaining=%s status=%s",
        bono.id,
        bono.hours,
        bono.hours_used,
        bono.hours_remaining,
        bono.status,
    )
    return bono


async def delete_bono(db: AsyncSession, bono_id: str) -> str:
    """Delete a voucher together with its usage records."""
    bono = await get_bono_or_404(db, bono_id)
    await db.execute(delete(Intervention).where(Intervention.bono_id == bono_id))
    await store.delete_record(db, bono)
    await db.commit()
    logger.info("bono_deleted id=%s", bono_id)
    return bono_id
