"""Punctual interventions: hours logged outside any voucher."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from models.punctual_intervention import PunctualIntervention
from services import store

logger = logging.getLogger(__name__)


def punctual_to_dict(item: PunctualIntervention) -> Dict[str, Any]:
    return {
        "id": item.id,
        "client_name": item.client_name,
        "hours": float(item.hours or 0),
        "date": item.date.isoformat() if item.date else None,
        "notes": item.notes,
        "images": list(item.images or []),
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


async def create_punctual_intervention(
    db: AsyncSession,
    *,
    client_name: str,
    hours: float,
    date: Optional[datetime] = None,
    notes: Optional[str] = None,
    images: Optional[List[str]] = None,
) -> PunctualIntervention:
    name = str(client_name or "").strip()
    if not name or float(hours or 0) <= 0:
        raise HTTPException(
            status_code=422,
            detail={"message": "Por favor rellena el nombre y las horas", "errors": {"client_name": name, "hours": hours}},
        )

    item = store.create_record(
        db,
        PunctualIntervention,
        {
            "client_name": name,
            "hours": float(hours),
            "date": date or datetime.now(timezone.utc),
            "notes": notes,
            "images": list(images or []),
        },
    )
    await db.commit()
    await db.refresh(item)
    logger.info("punctual_recorded id=%s client=%s hours=%s", item.id, item.client_name, item.hours)
    return item


async def list_punctual_interventions(db: AsyncSession) -> List[Dict[str, Any]]:
    items = await store.get_all(db, PunctualIntervention, order_by=[PunctualIntervention.date.desc()])
    return [punctual_to_dict(item) for item in items]


async def delete_punctual_intervention(db: AsyncSession, item_id: str) -> str:
    item = await store.get_by_id(db, PunctualIntervention, item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Punctual intervention not found")
    await store.delete_record(db, item)
    await db.commit()
    logger.info("punctual_deleted id=%s", item_id)
    return item_id
