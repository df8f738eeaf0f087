# expense_desk/services/invites.py
"""
Sign-up gating.

Modes, checked in order:

1. ``AUTH_SIGNUP_MODE=open``: anyone may sign up.
2. Bootstrap admin emails (``AUTH_ADMIN_EMAIL(S)``) bypass the invite check.
3. Fallback codes (``INVITE_CODES``): static codes, each usable once per
   process. The used set lives in memory only and is forgotten on restart,
   so this mode is meant for bootstrapping a fresh install.
4. Persisted invites: a row must be unused, unexpired and, when it names an
   email, match it. Consumption is a single conditional UPDATE.
"""
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from expense_desk import config
from expense_desk.models.invite import Invite

logger = logging.getLogger(__name__)

_fallback_used_codes: Set[str] = set()
_fallback_lock = threading.Lock()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def reset_fallback_invite_codes() -> None:
    with _fallback_lock:
        _fallback_used_codes.clear()


def _invite_conditions(code: str, email: str, now: datetime):
    return (
        Invite.token == code,
        Invite.used_at.is_(None),
        Invite.expires_at > now,
        or_(Invite.email.is_(None), Invite.email == email),
    )


def can_sign_up(db: Session, code: Optional[str], email: Optional[str]) -> bool:
    if config.signup_mode() == "open":
        return True
    if config.is_bootstrap_admin_email(email):
        return True

    code = (code or "").strip()
    if not code:
        return False

    fallback_codes = config.invite_codes()
    if fallback_codes:
        with _fallback_lock:
            return code in fallback_codes and code not in _fallback_used_codes

    found = db.execute(
        select(Invite.id).where(*_invite_conditions(code, _normalize_email(email), _now_utc()))
    ).first()
    return found is not None


def consume_invite_code(db: Session, code: Optional[str], email: Optional[str]) -> bool:
    """Mark the invite used. Returns False if it was not (or no longer) available."""
    if config.signup_mode() == "open":
        return True
    if config.is_bootstrap_admin_email(email):
        return True

    code = (code or "").strip()
    if not code:
        return False

    fallback_codes = config.invite_codes()
    if fallback_codes:
        with _fallback_lock:
            if code not in fallback_codes or code in _fallback_used_codes:
                return False
            _fallback_used_codes.add(code)
        logger.info("Consumed fallback invite code")
        return True

    now = _now_utc()
    result = db.execute(
        update(Invite)
        .where(*_invite_conditions(code, _normalize_email(email), now))
        .values(used_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return False
    db.commit()
    return True


def create_invite(
    db: Session,
    email: Optional[str] = None,
    created_by_user_id: Optional[uuid.UUID] = None,
    expires_in_days: Optional[int] = None,
) -> Invite:
    days = expires_in_days if expires_in_days and expires_in_days > 0 else config.invite_default_expiry_days()
    invite = Invite(
        token=f"inv_{uuid.uuid4().hex}",
        email=_normalize_email(email) or None,
        created_by_user_id=created_by_user_id,
        expires_at=_now_utc() + timedelta(days=days),
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)
    logger.info("Created invite %s (expires in %d days)", invite.id, days)
    return invite


def list_invites(db: Session, limit: int = 100) -> List[Invite]:
    return list(
        db.execute(select(Invite).order_by(Invite.created_at.desc()).limit(limit)).scalars().all()
    )
