# expense_desk/services/roles.py
"""
Role resolution and role-gated operations.

A principal's effective roles are the union of several independent sources
(the role claim on the user row, persisted role_assignment rows). The policy
is fixed:

* unknown role names are ignored,
* ``admin`` always brings ``finance`` and ``member`` with it,
* an empty result means ``member``.
"""
from __future__ import annotations

import enum
import logging
import uuid
from typing import FrozenSet, Iterable, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_desk import config
from expense_desk.models.rbac import RoleAssignment, User

logger = logging.getLogger(__name__)

APP_ROLES = ("member", "manager", "finance", "admin")

RoleSource = Union[None, str, Iterable[Optional[str]]]


class Operation(str, enum.Enum):
    CREATE_DRAFT = "create_draft"
    UPDATE_DRAFT = "update_draft"
    DELETE_DRAFT = "delete_draft"
    SUBMIT_DRAFT = "submit_draft"
    LIST_OWN_EXPENSES = "list_own_expenses"
    LIST_FINANCE_EXPENSES = "list_finance_expenses"
    CORRECT_EXPENSE = "correct_expense"
    VALIDATE_EXPENSE = "validate_expense"
    VIEW_RECEIPT = "view_receipt"
    MANAGE_INVITES = "manage_invites"
    MANAGE_ROLES = "manage_roles"


MEMBER_ROLES = frozenset({"member", "manager", "finance", "admin"})
FINANCE_ROLES = frozenset({"finance", "admin"})
ADMIN_ROLES = frozenset({"admin"})

_REQUIRED_ROLES = {
    Operation.CREATE_DRAFT: MEMBER_ROLES,
    Operation.UPDATE_DRAFT: MEMBER_ROLES,
    Operation.DELETE_DRAFT: MEMBER_ROLES,
    Operation.SUBMIT_DRAFT: MEMBER_ROLES,
    Operation.LIST_OWN_EXPENSES: MEMBER_ROLES,
    Operation.LIST_FINANCE_EXPENSES: FINANCE_ROLES,
    Operation.CORRECT_EXPENSE: FINANCE_ROLES,
    Operation.VALIDATE_EXPENSE: FINANCE_ROLES,
    Operation.VIEW_RECEIPT: MEMBER_ROLES,
    Operation.MANAGE_INVITES: ADMIN_ROLES,
    Operation.MANAGE_ROLES: ADMIN_ROLES,
}

BOOTSTRAP_ADMIN_ROLES = ("admin", "finance", "member")


def _iter_source(source: RoleSource) -> Iterable[str]:
    if source is None:
        return []
    if isinstance(source, str):
        # a claim may be a single role or a comma separated list
        return source.split(",")
    return [value for value in source if isinstance(value, str)]


def effective_roles(*sources: RoleSource) -> FrozenSet[str]:
    roles = set()
    for source in sources:
        for value in _iter_source(source):
            name = value.strip().lower()
            if name in APP_ROLES:
                roles.add(name)

    if "admin" in roles:
        roles.update({"finance", "member"})
    if not roles:
        roles.add("member")
    return frozenset(roles)


def get_user_roles(db: Session, user: User) -> FrozenSet[str]:
    assigned = (
        db.execute(select(RoleAssignment.role).where(RoleAssignment.user_id == user.id))
        .scalars()
        .all()
    )
    return effective_roles(user.role, assigned)


def has_any_role(roles: Iterable[str], required: Iterable[str]) -> bool:
    return bool(set(roles) & set(required))


def is_allowed(roles: Iterable[str], operation: Operation) -> bool:
    return has_any_role(roles, _REQUIRED_ROLES[operation])


def can_view_receipt(owner_id: uuid.UUID, viewer_id: uuid.UUID, viewer_roles: Iterable[str]) -> bool:
    if owner_id == viewer_id:
        return True
    return has_any_role(viewer_roles, FINANCE_ROLES)


# ---- Assignment persistence --------------------------------------------------

def assign_roles(db: Session, user_id: uuid.UUID, roles: Sequence[str]) -> int:
    """Insert missing role_assignment rows; returns how many were added."""
    unknown = [r for r in roles if r not in APP_ROLES]
    if unknown:
        raise ValueError(f"Unknown roles: {', '.join(sorted(unknown))}")

    existing = set(
        db.execute(select(RoleAssignment.role).where(RoleAssignment.user_id == user_id))
        .scalars()
        .all()
    )
    added = 0
    for role in roles:
        if role in existing:
            continue
        db.add(RoleAssignment(user_id=user_id, role=role))
        existing.add(role)
        added += 1
    if added:
        db.commit()
    return added


def ensure_bootstrap_admin_roles(db: Session, user: User) -> bool:
    """
    Grant admin/finance/member to configured bootstrap admin emails.

    Best-effort: a failure is logged and reported as False, never raised,
    so it cannot break the sign-up that triggered it.
    """
    if not config.is_bootstrap_admin_email(user.email):
        return False
    try:
        added = assign_roles(db, user.id, BOOTSTRAP_ADMIN_ROLES)
    except IntegrityError:
        db.rollback()
        logger.warning("Bootstrap admin role assignment raced for user %s", user.id)
        return False
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("Bootstrap admin role assignment failed for user %s", user.id)
        return False
    if added:
        logger.info("Granted bootstrap admin roles to %s", user.email)
    return True


def add_role_assignment(
    db: Session,
    user_id: uuid.UUID,
    role: str,
    scope_department_id: Optional[uuid.UUID] = None,
    scope_project_id: Optional[uuid.UUID] = None,
) -> RoleAssignment:
    """Persist one grant; an existing grant of the same role is returned as is."""
    role = (role or "").strip().lower()
    if role not in APP_ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    existing = (
        db.execute(
            select(RoleAssignment).where(RoleAssignment.user_id == user_id, RoleAssignment.role == role)
        )
        .scalars()
        .first()
    )
    if existing is not None:
        return existing

    assignment = RoleAssignment(
        user_id=user_id,
        role=role,
        scope_department_id=scope_department_id,
        scope_project_id=scope_project_id,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Assigned role %s to user %s", role, user_id)
    return assignment


def remove_role_assignment(db: Session, user_id: uuid.UUID, role: str) -> bool:
    role = (role or "").strip().lower()
    assignment = (
        db.execute(
            select(RoleAssignment).where(RoleAssignment.user_id == user_id, RoleAssignment.role == role)
        )
        .scalars()
        .first()
    )
    if assignment is None:
        return False
    db.delete(assignment)
    db.commit()
    logger.info("Revoked role %s from user %s", role, user_id)
    return True


def list_role_assignments(db: Session, user_id: uuid.UUID) -> List[RoleAssignment]:
    return list(
        db.execute(
            select(RoleAssignment).where(RoleAssignment.user_id == user_id).order_by(RoleAssignment.created_at)
        )
        .scalars()
        .all()
    )
