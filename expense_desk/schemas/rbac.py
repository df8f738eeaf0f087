# expense_desk/schemas/rbac.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ---------- Principals ----------

class WhoAmI(BaseModel):
    id: UUID
    email: str
    display_name: Optional[str] = None
    roles: List[str]


class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    display_name: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = Field(default=None, max_length=100, description="Role claim, e.g. 'finance'")
    api_key_plain: Optional[str] = Field(default=None, min_length=16)  # returned once


class UserOut(BaseModel):
    id: UUID
    email: str
    display_name: Optional[str] = None
    is_active: bool
    roles: List[str]
    api_key: Optional[str] = None  # only on creation


# ---------- Sign-up ----------

class SignUpRequest(BaseModel):
    email: str = Field(..., max_length=255)
    display_name: str = Field(..., max_length=100)
    invite_code: Optional[str] = None


# ---------- Role assignments ----------

class RoleAssignmentCreate(BaseModel):
    role: str
    scope_department_id: Optional[UUID] = None
    scope_project_id: Optional[UUID] = None


class RoleAssignmentOut(BaseModel):
    id: UUID
    user_id: UUID
    role: str
    scope_department_id: Optional[UUID] = None
    scope_project_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserRolesOut(BaseModel):
    user_id: UUID
    roles: List[str]
    assignments: List[RoleAssignmentOut]
