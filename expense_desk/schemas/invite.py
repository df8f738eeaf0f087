from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class InviteCreate(BaseModel):
    email: Optional[str] = Field(default=None, max_length=255)
    expires_in_days: Optional[int] = None


class InviteOut(BaseModel):
    id: UUID
    token: str
    email: Optional[str] = None
    created_by_user_id: Optional[UUID] = None
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
