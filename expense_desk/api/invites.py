# expense_desk/api/invites.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from expense_desk.api.rbac import Principal, require_operation
from expense_desk.dependencies import get_db
from expense_desk.schemas.invite import InviteCreate, InviteOut
from expense_desk.services.invites import create_invite, list_invites
from expense_desk.services.roles import Operation

router = APIRouter(prefix="/admin/invites", tags=["Admin"])

require_invite_admin = require_operation(Operation.MANAGE_INVITES)


@router.get("", response_model=List[InviteOut])
def get_invites(
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_invite_admin),
):
    return list_invites(db, limit=limit)


@router.post("", response_model=InviteOut, status_code=status.HTTP_201_CREATED)
def post_invite(
    payload: InviteCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_invite_admin),
):
    return create_invite(
        db,
        email=payload.email,
        created_by_user_id=principal.id,
        expires_in_days=payload.expires_in_days,
    )
