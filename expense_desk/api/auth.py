# expense_desk/api/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from expense_desk.dependencies import get_db
from expense_desk.errors import ExpenseError
from expense_desk.schemas.rbac import SignUpRequest, UserOut
from expense_desk.services.invites import can_sign_up, consume_invite_code
from expense_desk.services.roles import ensure_bootstrap_admin_roles, get_user_roles
from expense_desk.services.users import create_user, discard_user, email_taken

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/sign-up", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def sign_up(payload: SignUpRequest, db: Session = Depends(get_db)):
    """
    Create an account and return its API key (shown only here).

    The account is created before the invite is consumed, so a sign-up that
    fails on user creation never burns an invite. If the invite is gone by
    then, the fresh account is removed again and 409 invite_unavailable is
    returned.
    """
    email = payload.email.strip().lower()
    display_name = payload.display_name.strip()
    if not email or "@" not in email:
        raise ExpenseError(400, "invalid_email", "A valid email is required.")
    if not display_name:
        raise ExpenseError(400, "invalid_display_name", "Display name is required.")

    if not can_sign_up(db, payload.invite_code, email):
        raise ExpenseError(403, "invite_required", "A valid invite code is required to sign up.")
    if email_taken(db, email):
        raise ExpenseError(409, "email_taken", "An account with this email already exists.")

    user, api_key = create_user(db, email=email, display_name=display_name)
    if not consume_invite_code(db, payload.invite_code, email):
        discard_user(db, user)
        raise ExpenseError(409, "invite_unavailable", "This invite is no longer available.")

    ensure_bootstrap_admin_roles(db, user)
    logger.info("Signed up %s", user.email)

    return UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_active=user.is_active,
        roles=sorted(get_user_roles(db, user)),
        api_key=api_key,
    )
