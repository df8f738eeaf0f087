# expense_desk/api/rbac.py
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_desk.dependencies import get_db
from expense_desk.errors import ExpenseError
from expense_desk.models.rbac import User
from expense_desk.schemas.rbac import (
    RoleAssignmentCreate,
    RoleAssignmentOut,
    UserCreate,
    UserOut,
    UserRolesOut,
    WhoAmI,
)
from expense_desk.services.roles import (
    Operation,
    add_role_assignment,
    get_user_roles,
    is_allowed,
    list_role_assignments,
    remove_role_assignment,
)
from expense_desk.services.users import create_user, find_user_by_api_key

router = APIRouter(prefix="/rbac", tags=["RBAC"])


# ---- Auth dependencies ---------------------------------------------------------

@dataclass(frozen=True)
class Principal:
    user: User
    roles: FrozenSet[str]

    @property
    def id(self) -> uuid.UUID:
        return self.user.id


def get_current_principal(
    db: Session = Depends(get_db),
    api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> Principal:
    """Resolve the calling user from X-API-Key, together with their effective roles."""
    if not api_key:
        raise ExpenseError(status.HTTP_401_UNAUTHORIZED, "not_authenticated", "Missing X-API-Key header.")

    user = find_user_by_api_key(db, api_key)
    if not user:
        raise ExpenseError(status.HTTP_401_UNAUTHORIZED, "invalid_api_key", "Invalid API key.")
    return Principal(user=user, roles=get_user_roles(db, user))


def require_operation(operation: Operation) -> Callable[..., Principal]:
    """Dependency factory: the principal's roles must allow `operation`."""
    def _inner(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not is_allowed(principal.roles, operation):
            raise ExpenseError(
                status.HTTP_403_FORBIDDEN,
                "forbidden",
                "You do not have permission to perform this action.",
            )
        return principal
    return _inner


require_role_admin = require_operation(Operation.MANAGE_ROLES)


def _get_user_or_404(db: Session, user_id: uuid.UUID) -> User:
    user = db.get(User, user_id)
    if not user:
        raise ExpenseError(404, "user_not_found", "User was not found.")
    return user


def _user_out(db: Session, user: User, api_key: Optional[str] = None) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_active=user.is_active,
        roles=sorted(get_user_roles(db, user)),
        api_key=api_key,
    )


# ---- User endpoints -----------------------------------------------------------

@router.get("/whoami", response_model=WhoAmI)
def whoami(principal: Principal = Depends(get_current_principal)):
    return WhoAmI(
        id=principal.user.id,
        email=principal.user.email,
        display_name=principal.user.display_name,
        roles=sorted(principal.roles),
    )


@router.post(
    "/users",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_role_admin)],
)
def create_user_endpoint(payload: UserCreate, db: Session = Depends(get_db)):
    user, api_key = create_user(
        db,
        email=payload.email,
        display_name=payload.display_name,
        role=payload.role,
        api_key_plain=payload.api_key_plain,
    )
    return _user_out(db, user, api_key=api_key)


@router.get("/users", response_model=List[UserOut], dependencies=[Depends(require_role_admin)])
def list_users(db: Session = Depends(get_db)):
    users = db.execute(select(User).order_by(User.email)).scalars().all()
    return [_user_out(db, u) for u in users]


# ---- Role assignment endpoints -------------------------------------------------

@router.get("/users/{user_id}/roles", response_model=UserRolesOut, dependencies=[Depends(require_role_admin)])
def get_roles_for_user(user_id: uuid.UUID, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    return UserRolesOut(
        user_id=user.id,
        roles=sorted(get_user_roles(db, user)),
        assignments=[RoleAssignmentOut.model_validate(a) for a in list_role_assignments(db, user.id)],
    )


@router.post(
    "/users/{user_id}/roles",
    response_model=RoleAssignmentOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_role_admin)],
)
def assign_role(user_id: uuid.UUID, payload: RoleAssignmentCreate, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    try:
        assignment = add_role_assignment(
            db,
            user.id,
            payload.role,
            scope_department_id=payload.scope_department_id,
            scope_project_id=payload.scope_project_id,
        )
    except ValueError:
        raise ExpenseError(400, "invalid_role", "Role must be member, manager, finance, or admin.")
    return assignment


@router.delete(
    "/users/{user_id}/roles/{role}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_role_admin)],
)
def revoke_role(user_id: uuid.UUID, role: str, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    if not remove_role_assignment(db, user.id, role):
        raise ExpenseError(404, "role_assignment_not_found", "The user does not hold that role assignment.")
    return None
