# expense_desk/services/finance_expenses.py
"""
Finance review: listing, correcting and validating expenses.

Finance staff act only on ``submitted`` and ``received`` expenses. The two
resolvers below are pure and decide the next status before anything is
written:

    current     requested    result
    ---------   ----------   -------------------------------------------
    draft       *            409 finance_edit_not_allowed
    submitted   (none)       submitted, fields only
    received    (none)       received, fields only
    submitted   received     received, received_at = now
    received    received     received, received_at kept
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from expense_desk.errors import ExpenseError
from expense_desk.models.expense import Expense, ExpenseStatus
from expense_desk.models.organization import Department, Project
from expense_desk.services.expense_validation import (
    ExpenseInput,
    is_uuid,
    parse_expense_date,
    validate_expense_input,
)
from expense_desk.services.expenses import (
    ensure_references_active,
    expense_not_found,
    get_visible_expense,
    transition_status,
)

logger = logging.getLogger(__name__)

FINANCE_STATUS_FILTERS = ("all", "draft", "submitted", "received")
DEFAULT_STATUS_FILTER = "submitted"

_CORRECTABLE_FIELDS = (
    "amount", "expense_date", "category", "payment_method", "comment", "department_id", "project_id",
)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ---- Transition resolvers ------------------------------------------------------

@dataclass(frozen=True)
class ResolvedTransition:
    status: ExpenseStatus
    stamp_received_at: bool = False


def invalid_status_transition(message: str = "That status change is not allowed.") -> ExpenseError:
    return ExpenseError(409, "invalid_status_transition", message)


def resolve_finance_status_transition(
    current: ExpenseStatus,
    requested: Optional[ExpenseStatus] = None,
) -> ResolvedTransition:
    current = ExpenseStatus(current)
    if current not in (ExpenseStatus.SUBMITTED, ExpenseStatus.RECEIVED):
        raise ExpenseError(
            409, "finance_edit_not_allowed", "Only submitted or received expenses can be updated."
        )
    if requested is None:
        return ResolvedTransition(status=current)

    requested = ExpenseStatus(requested)
    if requested == ExpenseStatus.RECEIVED and current == ExpenseStatus.SUBMITTED:
        return ResolvedTransition(status=ExpenseStatus.RECEIVED, stamp_received_at=True)
    if requested == ExpenseStatus.RECEIVED and current == ExpenseStatus.RECEIVED:
        return ResolvedTransition(status=ExpenseStatus.RECEIVED)
    raise invalid_status_transition()


def resolve_finance_validation_transition(current: ExpenseStatus) -> ResolvedTransition:
    if ExpenseStatus(current) == ExpenseStatus.DRAFT:
        raise invalid_status_transition("Only submitted expenses can be marked as received.")
    return resolve_finance_status_transition(current, ExpenseStatus.RECEIVED)


def can_correct_in_process_view(status: ExpenseStatus) -> bool:
    """Whether the review screen offers the correction form for this status."""
    return ExpenseStatus(status) == ExpenseStatus.SUBMITTED


# ---- Listing -----------------------------------------------------------------

@dataclass(frozen=True)
class FinanceFilters:
    status: str = DEFAULT_STATUS_FILTER
    department_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None


def _filter_identifier(value: Optional[str]) -> Optional[uuid.UUID]:
    text = (value or "").strip()
    if not text:
        return None
    if not is_uuid(text):
        raise ExpenseError(400, "invalid_filter_identifier", "Department/project filters must be UUIDs.")
    return uuid.UUID(text)


def parse_finance_filters(
    status: Optional[str] = None,
    department_id: Optional[str] = None,
    project_id: Optional[str] = None,
) -> FinanceFilters:
    normalized = (status or "").strip().lower() or DEFAULT_STATUS_FILTER
    if normalized not in FINANCE_STATUS_FILTERS:
        raise ExpenseError(
            400, "invalid_status_filter", "Status filter must be all, draft, submitted, or received."
        )
    return FinanceFilters(
        status=normalized,
        department_id=_filter_identifier(department_id),
        project_id=_filter_identifier(project_id),
    )


@dataclass
class FinanceExpenseListing:
    expenses: List[Expense] = field(default_factory=list)
    departments: List[Department] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)


def list_finance_expenses(db: Session, filters: FinanceFilters) -> FinanceExpenseListing:
    stmt = (
        select(Expense)
        .options(
            selectinload(Expense.attachment),
            selectinload(Expense.member),
            selectinload(Expense.department),
            selectinload(Expense.project),
        )
        .where(Expense.deleted_at.is_(None))
    )
    if filters.status != "all":
        stmt = stmt.where(Expense.status == ExpenseStatus(filters.status))
    if filters.department_id is not None:
        stmt = stmt.where(Expense.department_id == filters.department_id)
    if filters.project_id is not None:
        stmt = stmt.where(Expense.project_id == filters.project_id)
    stmt = stmt.order_by(
        func.coalesce(Expense.submitted_at, Expense.created_at).desc(),
        Expense.created_at.desc(),
    )

    departments = (
        db.execute(select(Department).where(Department.is_active.is_(True)).order_by(Department.name))
        .scalars()
        .all()
    )
    projects = (
        db.execute(select(Project).where(Project.is_active.is_(True)).order_by(Project.name))
        .scalars()
        .all()
    )
    return FinanceExpenseListing(
        expenses=list(db.execute(stmt).scalars().all()),
        departments=list(departments),
        projects=list(projects),
    )


# ---- Correction --------------------------------------------------------------

def parse_finance_update_payload(
    changes: Mapping[str, Any],
) -> Tuple[dict, Optional[ExpenseStatus]]:
    """Split a correction body into field changes and the requested status."""
    field_changes = {name: changes[name] for name in _CORRECTABLE_FIELDS if name in changes}

    raw_status = changes.get("status")
    requested = None
    if raw_status is not None and str(raw_status).strip():
        if str(raw_status).strip().lower() != ExpenseStatus.RECEIVED.value:
            raise ExpenseError(400, "invalid_status_transition", "Status can only be set to received.")
        requested = ExpenseStatus.RECEIVED
    return field_changes, requested


def _current_input(expense: Expense) -> ExpenseInput:
    return ExpenseInput(
        amount=str(Decimal(expense.amount_minor).scaleb(-2)),
        expense_date=expense.expense_date.isoformat() if expense.expense_date else None,
        category=expense.category,
        payment_method=getattr(expense.payment_method, "value", expense.payment_method),
        comment=expense.comment,
        department_id=str(expense.department_id) if expense.department_id else None,
        project_id=str(expense.project_id) if expense.project_id else None,
    )


def _received_at_for(expense: Expense, transition: ResolvedTransition, now: datetime) -> Optional[datetime]:
    if transition.stamp_received_at:
        return now
    if transition.status == ExpenseStatus.RECEIVED:
        return expense.received_at or now
    return None


def update_finance_expense(db: Session, expense_id: Any, changes: Mapping[str, Any]) -> Expense:
    expense = get_visible_expense(db, expense_id)
    if expense is None:
        raise expense_not_found()

    field_changes, requested = parse_finance_update_payload(changes)
    current_status = ExpenseStatus(expense.status)
    transition = resolve_finance_status_transition(current_status, requested)

    merged = _current_input(expense)
    for name, value in field_changes.items():
        setattr(merged, name, value)
    fields = validate_expense_input(merged)
    expense_date = parse_expense_date(fields.expense_date)

    # only references that actually change must point at active rows
    ensure_references_active(
        db,
        fields.department_id if fields.department_id != expense.department_id else None,
        fields.project_id if fields.project_id != expense.project_id else None,
    )

    now = _now_utc()
    changed = transition_status(
        db,
        expense.id,
        current_status,
        {
            "department_id": fields.department_id,
            "project_id": fields.project_id,
            "amount_minor": fields.amount_minor,
            "expense_date": expense_date,
            "category": fields.category,
            "payment_method": fields.payment_method,
            "comment": fields.comment,
            "status": transition.status,
            "received_at": _received_at_for(expense, transition, now),
            "updated_at": now,
        },
    )
    if not changed:
        raise ExpenseError(
            409, "expense_changed", "The expense was changed by another request. Reload and try again."
        )

    db.refresh(expense)
    logger.info(
        "Finance corrected expense %s (status %s -> %s)",
        expense.public_id, current_status.value, transition.status.value,
    )
    return expense


def mark_finance_expense_validated(db: Session, expense_id: Any) -> Expense:
    expense = get_visible_expense(db, expense_id)
    if expense is None:
        raise expense_not_found()

    transition = resolve_finance_validation_transition(expense.status)
    if not transition.stamp_received_at:
        # already received: nothing to write
        return expense

    now = _now_utc()
    changed = transition_status(
        db,
        expense.id,
        ExpenseStatus.SUBMITTED,
        {"status": ExpenseStatus.RECEIVED, "received_at": now, "updated_at": now},
    )
    if not changed:
        # another request moved it first; settle on whatever state it is in now
        expense = get_visible_expense(db, expense.id)
        if expense is None:
            raise expense_not_found()
        resolve_finance_validation_transition(expense.status)
        return expense

    db.refresh(expense)
    logger.info("Expense %s marked as received", expense.public_id)
    return expense
