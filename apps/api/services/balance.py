"""Voucher balance engine.

Pure functions over voucher snapshots: hour bookkeeping for usage events,
status transitions, and the read-time display status. Nothing here touches
the database; callers copy the returned values onto their rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Mapping, Optional


STATUS_ACTIVE = "active"
STATUS_DEPLETED = "depleted"
STATUS_EXPIRED = "expired"
VOUCHER_STATUSES = (STATUS_ACTIVE, STATUS_DEPLETED, STATUS_EXPIRED)

HOURS_PRECISION = 2


class VoucherValidationError(ValueError):
    """Voucher data rejected before any write; ``errors`` maps field -> message."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{field}: {message}" for field, message in self.errors.items()))


@dataclass(frozen=True)
class BalanceUpdate:
    hours_used: float
    hours_remaining: float
    status: str


def _round_hours(value: Any) -> float:
    return round(float(value or 0), HOURS_PRECISION)


def apply_usage(voucher: Any, hours_delta: float) -> BalanceUpdate:
    """Deduct ``hours_delta`` consumed by one usage event.

    Over-consumption is not rejected here; remaining hours may go negative.
    """
    delta = _round_hours(hours_delta)
    if delta <= 0:
        raise ValueError("hours_delta must be greater than 0")

    hours_used = _round_hours(_round_hours(voucher.hours_used) + delta)
    hours_remaining = _round_hours(_round_hours(voucher.hours) - hours_used)
    status = voucher.status or STATUS_ACTIVE
    if hours_remaining <= 0:
        if status != STATUS_EXPIRED:
            status = STATUS_DEPLETED
    elif status == STATUS_DEPLETED:
        status = STATUS_ACTIVE
    return BalanceUpdate(hours_used=hours_used, hours_remaining=hours_remaining, status=status)


def reverse_usage(voucher: Any, hours_delta: float) -> BalanceUpdate:
    """Give back ``hours_delta`` previously deducted by a usage event.

    Expired vouchers stay expired.
    """
    delta = _round_hours(hours_delta)
    if delta <= 0:
        raise ValueError("hours_delta must be greater than 0")

    hours_used = max(0.0, _round_hours(_round_hours(voucher.hours_used) - delta))
    hours_remaining = _round_hours(_round_hours(voucher.hours) - hours_used)
    status = voucher.status or STATUS_ACTIVE
    if hours_remaining > 0 and status == STATUS_DEPLETED:
        status = STATUS_ACTIVE
    return BalanceUpdate(hours_used=hours_used, hours_remaining=hours_remaining, status=status)


def _expiry_instant(expiry: Any) -> Optional[datetime]:
    if expiry is None:
        return None
    if isinstance(expiry, datetime):
        return expiry if expiry.tzinfo else expiry.replace(tzinfo=timezone.utc)
    if isinstance(expiry, date):
        return datetime.combine(expiry, time.min, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(str(expiry))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def derive_display_status(voucher: Any, now: Optional[datetime] = None) -> str:
    """Status shown to users at read time. Never persisted.

    Expiry wins over depletion and only applies to active vouchers.
    """
    status = voucher.status or STATUS_ACTIVE
    if voucher.never_expires:
        return status

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    expires_at = _expiry_instant(voucher.expiry_date)
    if status == STATUS_ACTIVE and expires_at is not None and expires_at < current:
        return STATUS_EXPIRED
    if status == STATUS_ACTIVE and _round_hours(voucher.hours_remaining) <= 0:
        return STATUS_DEPLETED
    return status


def validate_voucher_data(data: Mapping[str, Any]) -> Dict[str, str]:
    """Return field errors for voucher create/edit payloads (empty when valid)."""
    errors: Dict[str, str] = {}

    if not str(data.get("client_name") or "").strip():
        errors["client_name"] = "El nombre del cliente es requerido"
    if not str(data.get("service") or "").strip():
        errors["service"] = "El servicio es requerido"

    hours = data.get("hours")
    try:
        hours_value = float(hours) if hours is not None else 0.0
    except (TypeError, ValueError):
        hours_value = 0.0
    if hours_value <= 0:
        errors["hours"] = "Las horas deben ser mayor a 0"

    if not data.get("issue_date"):
        errors["issue_date"] = "La fecha de emisión es requerida"

    if not data.get("never_expires"):
        expiry = data.get("expiry_date")
        issue = data.get("issue_date")
        if not expiry:
            errors["expiry_date"] = "La fecha de expiración es requerida"
        elif issue and _expiry_instant(expiry) <= _expiry_instant(issue):
            errors["expiry_date"] = "La fecha de expiración debe ser posterior a la fecha de emisión"

    status = data.get("status")
    if status is not None and status not in VOUCHER_STATUSES:
        errors["status"] = f"Estado no válido: {status}"

    return errors


def create_voucher(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate and build the field values of a new voucher."""
    errors = validate_voucher_data(data)
    if errors:
        raise VoucherValidationError(errors)

    hours = _round_hours(data["hours"])
    never_expires = bool(data.get("never_expires"))
    return {
        "client_id": data.get("client_id"),
        "client_name": str(data["client_name"]).strip(),
        "service": str(data["service"]).strip(),
        "hours": hours,
        "hours_used": 0.0,
        "hours_remaining": hours,
        "issue_date": data.get("issue_date"),
        "expiry_date": None if never_expires else data.get("expiry_date"),
        "never_expires": never_expires,
        "status": data.get("status") or STATUS_ACTIVE,
        "notes": data.get("notes"),
    }


def edit_voucher(existing: Any, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate an edit and recompute remaining hours against consumption so far.

    Editing total hours never resets ``hours_used``.
    """
    merged = {
        "client_id": existing.client_id,
        "client_name": existing.client_name,
        "service": existing.service,
        "hours": existing.hours,
        "issue_date": existing.issue_date,
        "expiry_date": existing.expiry_date,
        "never_expires": existing.never_expires,
        "status": existing.status,
        "notes": existing.notes,
    }
    merged.update(
        {
            key: value
            for key, value in data.items()
            if key in merged and not (value is None and key in ("never_expires", "status"))
        }
    )

    errors = validate_voucher_data(merged)
    if errors:
        raise VoucherValidationError(errors)

    hours = _round_hours(merged["hours"])
    hours_used = _round_hours(existing.hours_used)
    hours_remaining = _round_hours(hours - hours_used)
    never_expires = bool(merged["never_expires"])

    # An explicit status in the edit wins; otherwise follow the new balance.
    status = merged["status"] or STATUS_ACTIVE
    if data.get("status") is None:
        if status == STATUS_DEPLETED and hours_remaining > 0:
            status = STATUS_ACTIVE
        elif status == STATUS_ACTIVE and hours_remaining <= 0:
            status = STATUS_DEPLETED

    merged.update(
        {
            "client_name": str(merged["client_name"]).strip(),
            "service": str(merged["service"]).strip(),
            "hours": hours,
            "hours_used": hours_used,
            "hours_remaining": hours_remaining,
            "expiry_date": None if never_expires else merged["expiry_date"],
            "never_expires": never_expires,
            "status": status,
        }
    )
    return merged
