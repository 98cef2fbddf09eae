"""User management router (administrators only)."""

from __future__ import annotations

from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, require_admin
from services.accounts import create_account, delete_user, list_users, update_user, user_to_dict

router = APIRouter()


class CreateUserRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=72)
    name: Optional[str] = None
    role: Literal["admin", "client"] = "client"
    phone: Optional[str] = None
    company_name: Optional[str] = None


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    role: Optional[Literal["admin", "client"]] = None
    phone: Optional[str] = None
    company_name: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    phone: Optional[str] = None
    company_name: Optional[str] = None
    created_at: Optional[str] = None


@router.get("", response_model=List[UserResponse])
async def get_users(
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_users(db)


@router.get("/clients", response_model=List[UserResponse])
async def get_clients(
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Accounts that can hold vouchers."""
    return await list_users(db, role="client")


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    request: CreateUserRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await create_account(
        db,
        email=request.email,
        password=request.password,
        name=request.name,
        role=request.role,
        phone=request.phone,
        company_name=request.company_name,
    )
    return user_to_dict(user)


@router.patch("/{user_id}", response_model=UserResponse)
async def patch_user(
    user_id: str,
    request: UpdateUserRequest,
    _admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await update_user(db, user_id, request.model_dump(exclude_unset=True))
    return user_to_dict(user)


@router.delete("/{user_id}")
async def remove_user(
    user_id: str,
    admin: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if user_id == admin.user_id:
        raise HTTPException(status_code=422, detail="No puedes eliminar tu propia cuenta")
    await delete_user(db, user_id)
    return {"deleted": user_id}
