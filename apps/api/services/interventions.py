"""Usage recording: interventions and the voucher balance they consume.

Every operation that touches both an intervention and its voucher runs in one
transaction with the voucher row locked, so the pair is written or rolled back
together.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.bono import Bono
from models.intervention import Intervention
from services import store
from services.balance import STATUS_ACTIVE, apply_usage, derive_display_status, reverse_usage
from services.bonos import get_bono_or_404

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("notes", "date", "images", "hours_used")


def intervention_to_dict(intervention: Intervention) -> Dict[str, Any]:
    return {
        "id": intervention.id,
        "client_id": intervention.client_id,
        "client_name": intervention.client_name,
        "bono_id": intervention.bono_id,
        "hours_used": float(intervention.hours_used or 0),
        "date": intervention.date.isoformat() if intervention.date else None,
        "notes": intervention.notes,
        "images": list(intervention.images or []),
        "created_at": intervention.created_at.isoformat() if intervention.created_at else None,
        "updated_at": intervention.updated_at.isoformat() if intervention.updated_at else None,
    }


def _usage_error(message: str, field: str = "hours_used") -> HTTPException:
    return HTTPException(status_code=422, detail={"message": message, "errors": {field: message}})


def _ensure_can_consume(bono: Bono, hours: float, now: Optional[datetime]) -> None:
    status = derive_display_status(bono, now)
    if status != STATUS_ACTIVE:
        raise _usage_error(f"El bono no está activo ({status})", field="bono_id")
    remaining = float(bono.hours_remaining or 0)
    if hours > remaining:
        logger.warning("usage_over_remaining bono=%s requested=%s remaining=%s", bono.id, hours, remaining)
        raise _usage_error(f"No puedes registrar más horas de las disponibles ({remaining:g}h)")


async def _commit_or_503(db: AsyncSession, operation: str, reference: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("%s rolled back for %s: %s", operation, reference, exc)
        raise HTTPException(
            status_code=503,
            detail="No se pudo guardar la asistencia. Intenta nuevamente.",
        ) from exc


async def get_intervention_or_404(db: AsyncSession, intervention_id: str) -> Intervention:
    intervention = await store.get_by_id(db, Intervention, intervention_id)
    if not intervention:
        raise HTTPException(status_code=404, detail="Intervention not found")
    return intervention


async def record_usage(
    db: AsyncSession,
    *,
    bono_id: str,
    hours_used: float,
    date: Optional[datetime] = None,
    notes: Optional[str] = None,
    images: Optional[List[str]] = None,
    client_id: Optional[str] = None,
    allow_overdraft: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Create an intervention and deduct its hours from the voucher atomically."""
    hours = float(hours_used or 0)
    if hours <= 0:
        raise _usage_error("Por favor selecciona un bono y horas válidas")

    bono = await get_bono_or_404(db, bono_id, for_update=True)
    if client_id and bono.client_id and client_id != bono.client_id:
        raise _usage_error("El bono no pertenece al cliente indicado", field="client_id")
    if not allow_overdraft:
        _ensure_can_consume(bono, hours, now)

    update = apply_usage(bono, hours)
    intervention = store.create_record(
        db,
        Intervention,
        {
            "client_id": bono.client_id,
            "client_name": bono.client_name,
            "bono_id": bono.id,
            "hours_used": hours,
            "date": date or now or datetime.now(timezone.utc),
            "notes": notes,
            "images": list(images or []),
        },
    )
    store.update_record(bono, asdict(update))
    await _commit_or_503(db, "record_usage", bono_id)
    await db.refresh(intervention)
    await db.refresh(bono)

    logger.info(
        "usage_recorded intervention=%s bono=%s hours=%s remaining=%s status=%s",
        intervention.id,
        bono.id,
        hours,
        bono.hours_remaining,
        bono.status,
    )
    return {"intervention": intervention, "bono": bono}


async def delete_usage(db: AsyncSession, intervention_id: str) -> Dict[str, Any]:
    """Delete an intervention and restore its hours to the voucher atomically."""
    intervention = await get_intervention_or_404(db, intervention_id)
    bono = await store.get_by_id(db, Bono, intervention.bono_id, for_update=True)
    restored = float(intervention.hours_used or 0)

    if bono is not None and restored > 0:
        store.update_record(bono, asdict(reverse_usage(bono, restored)))
    await store.delete_record(db, intervention)
    await _commit_or_503(db, "delete_usage", intervention_id)

    if bono is not None:
        await db.refresh(bono)
        logger.info(
            "usage_deleted intervention=%s bono=%s restored=%s remaining=%s status=%s",
            intervention_id,
            bono.id,
            restored,
            bono.hours_remaining,
            bono.status,
        )
    else:
        logger.warning("usage_deleted intervention=%s without voucher %s", intervention_id, intervention.bono_id)
    return {"intervention_id": intervention_id, "bono": bono, "hours_restored": restored if bono is not None else 0.0}


async def edit_usage(
    db: AsyncSession,
    intervention_id: str,
    fields: Dict[str, Any],
    *,
    allow_overdraft: bool = False,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Edit notes/date/images; a changed ``hours_used`` rebalances the voucher."""
    intervention = await get_intervention_or_404(db, intervention_id)
    changes = {key: value for key, value in fields.items() if key in EDITABLE_FIELDS and value is not None}

    bono: Optional[Bono] = None
    new_hours = changes.pop("hours_used", None)
    if new_hours is not None and float(new_hours) != float(intervention.hours_used or 0):
        new_hours = float(new_hours)
        if new_hours <= 0:
            raise _usage_error("Las horas deben ser mayor a 0")
        bono = await get_bono_or_404(db, intervention.bono_id, for_update=True)
        store.update_record(bono, asdict(reverse_usage(bono, float(intervention.hours_used or 0))))
        if not allow_overdraft:
            _ensure_can_consume(bono, new_hours, now)
        store.update_record(bono, asdict(apply_usage(bono, new_hours)))
        changes["hours_used"] = new_hours

    if "images" in changes:
        changes["images"] = list(changes["images"])
    store.update_record(intervention, changes)
    await _commit_or_503(db, "edit_usage", intervention_id)
    await db.refresh(intervention)
    if bono is not None:
        await db.refresh(bono)
        logger.info(
            "usage_rebalanced intervention=%s bono=%s hours=%s remaining=%s",
            intervention.id,
            bono.id,
            intervention.hours_used,
            bono.hours_remaining,
        )
    return {"intervention": intervention, "bono": bono}


async def list_client_interventions(db: AsyncSession, client_id: str) -> List[Dict[str, Any]]:
    interventions = await store.get_by_filter(
        db,
        Intervention,
        client_id=client_id,
        order_by=[Intervention.date.desc()],
    )
    return [intervention_to_dict(item) for item in interventions]


async def list_bono_interventions(db: AsyncSession, bono_id: str) -> List[Dict[str, Any]]:
    interventions = await store.get_by_filter(
        db,
        Intervention,
        bono_id=bono_id,
        order_by=[Intervention.date.desc()],
    )
    return [intervention_to_dict(item) for item in interventions]
