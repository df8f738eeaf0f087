from __future__ import annotations

import hashlib
import logging
import secrets
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_desk import config
from expense_desk.errors import ExpenseError
from expense_desk.models.rbac import User

logger = logging.getLogger(__name__)


def hash_api_key(api_key_plain: str) -> str:
    """Hash the plaintext API key (sha256 hex over key + pepper; store only the hash)."""
    h = hashlib.sha256()
    h.update((api_key_plain + config.api_key_pepper()).encode("utf-8"))
    return h.hexdigest()


def generate_api_key() -> str:
    return secrets.token_urlsafe(32)


def find_user_by_api_key(db: Session, api_key_plain: str) -> Optional[User]:
    return (
        db.execute(
            select(User).where(User.api_key_hash == hash_api_key(api_key_plain), User.is_active.is_(True))
        )
        .scalars()
        .first()
    )


def email_taken(db: Session, email: str) -> bool:
    return db.execute(select(User.id).where(User.email == email.strip().lower())).first() is not None


def create_user(
    db: Session,
    email: str,
    display_name: Optional[str] = None,
    role: Optional[str] = None,
    api_key_plain: Optional[str] = None,
) -> Tuple[User, str]:
    """Create an active user; returns the row and the plaintext key (shown once)."""
    api_key_plain = api_key_plain or generate_api_key()
    user = User(
        email=email.strip().lower(),
        display_name=(display_name or "").strip() or None,
        api_key_hash=hash_api_key(api_key_plain),
        role=(role or "").strip().lower() or None,
        is_active=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ExpenseError(409, "email_taken", "An account with this email already exists.")
    db.refresh(user)
    logger.info("Created user %s (%s)", user.id, user.email)
    return user, api_key_plain


def discard_user(db: Session, user: User) -> None:
    """Remove a user that was created moments ago and never used."""
    user_id = user.id
    db.delete(user)
    db.commit()
    logger.info("Discarded just-created user %s", user_id)
