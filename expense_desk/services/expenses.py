# expense_desk/services/expenses.py
"""
Member side of the expense lifecycle: draft -> submitted.

Status-changing writes are conditional updates keyed on the expense id and
its current status, so two concurrent submits of the same draft can never
both succeed; the loser sees 409 expense_not_draft.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from expense_desk import config
from expense_desk.errors import ExpenseError
from expense_desk.models.expense import Expense, ExpenseAttachment, ExpenseStatus
from expense_desk.models.organization import Department, Project
from expense_desk.services.attachments import save_receipt_attachment
from expense_desk.services.expense_validation import (
    ExpenseInput,
    ReceiptUpload,
    assert_valid_receipt_file,
    is_uuid,
    parse_expense_date,
    validate_expense_input,
)
from expense_desk.services.storage import ReceiptStorage

logger = logging.getLogger(__name__)

PUBLIC_ID_ATTEMPTS = 5


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ---- Errors / lookups ----------------------------------------------------------

def expense_not_found() -> ExpenseError:
    return ExpenseError(404, "expense_not_found", "Expense was not found.")


def expense_not_draft() -> ExpenseError:
    return ExpenseError(409, "expense_not_draft", "Only draft expenses can be changed.")


def missing_receipt(message: str = "A receipt file is required before submission.") -> ExpenseError:
    return ExpenseError(400, "missing_receipt", message)


def parse_expense_id(expense_id: Any) -> Optional[uuid.UUID]:
    if isinstance(expense_id, uuid.UUID):
        return expense_id
    text = str(expense_id or "").strip()
    return uuid.UUID(text) if is_uuid(text) else None


def get_visible_expense(db: Session, expense_id: Any) -> Optional[Expense]:
    """Non-deleted expense by id, or None (bad ids included)."""
    parsed = parse_expense_id(expense_id)
    if parsed is None:
        return None
    return (
        db.execute(select(Expense).where(Expense.id == parsed, Expense.deleted_at.is_(None)))
        .scalars()
        .first()
    )


def require_owned_draft_expense(db: Session, member_id: uuid.UUID, expense_id: Any) -> Expense:
    """
    The caller's own, visible draft.

    Missing, deleted and foreign expenses all raise the same 404 so the
    response never reveals that someone else's expense exists.
    """
    expense = get_visible_expense(db, expense_id)
    if expense is None or expense.member_id != member_id:
        raise expense_not_found()
    if expense.status != ExpenseStatus.DRAFT:
        raise expense_not_draft()
    return expense


def ensure_references_active(
    db: Session,
    department_id: Optional[uuid.UUID],
    project_id: Optional[uuid.UUID],
) -> None:
    if department_id is not None:
        found = db.execute(
            select(Department.id).where(Department.id == department_id, Department.is_active.is_(True))
        ).first()
        if not found:
            raise ExpenseError(400, "unknown_department", "Department does not exist or is inactive.")
    if project_id is not None:
        found = db.execute(
            select(Project.id).where(Project.id == project_id, Project.is_active.is_(True))
        ).first()
        if not found:
            raise ExpenseError(400, "unknown_project", "Project does not exist or is inactive.")


def transition_status(
    db: Session,
    expense_id: uuid.UUID,
    expected_status: ExpenseStatus,
    values: Dict[str, Any],
    member_id: Optional[uuid.UUID] = None,
) -> bool:
    """
    UPDATE expense SET <values> WHERE id = :id AND status = :expected.

    Commits and returns True when a row changed; rolls back and returns
    False when the row no longer matched (another request won the race).
    """
    stmt = (
        update(Expense)
        .where(
            Expense.id == expense_id,
            Expense.status == expected_status,
            Expense.deleted_at.is_(None),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if member_id is not None:
        stmt = stmt.where(Expense.member_id == member_id)

    result = db.execute(stmt)
    if result.rowcount != 1:
        db.rollback()
        return False
    db.commit()
    return True


# ---- Public ids --------------------------------------------------------------

def _random_public_suffix() -> int:
    return secrets.randbelow(1_000_000)


def next_public_expense_id(db: Session, year: int) -> str:
    for _ in range(PUBLIC_ID_ATTEMPTS):
        candidate = f"EXP-{year}-{_random_public_suffix():06d}"
        taken = db.execute(select(Expense.id).where(Expense.public_id == candidate)).first()
        if not taken:
            return candidate
    raise ExpenseError(
        503, "public_id_generation_failed", "Could not allocate an expense number. Please retry."
    )


# ---- Member operations ---------------------------------------------------------

def list_member_expenses(db: Session, member_id: uuid.UUID) -> List[Expense]:
    return list(
        db.execute(
            select(Expense)
            .options(selectinload(Expense.attachment))
            .where(Expense.member_id == member_id, Expense.deleted_at.is_(None))
            .order_by(Expense.created_at.desc())
        )
        .scalars()
        .all()
    )


@dataclass(frozen=True)
class MemberExpenseStats:
    submitted_count: int
    submitted_total_minor: int


def summarize_member_expenses(expenses: Sequence[Expense]) -> MemberExpenseStats:
    submitted = [e for e in expenses if e.status == ExpenseStatus.SUBMITTED]
    return MemberExpenseStats(
        submitted_count=len(submitted),
        submitted_total_minor=sum(e.amount_minor for e in submitted),
    )


def create_draft_expense(
    db: Session,
    storage: ReceiptStorage,
    member_id: uuid.UUID,
    raw: ExpenseInput,
    receipt: Optional[ReceiptUpload],
) -> Expense:
    """
    Insert a draft and attach its receipt.

    The expense row is committed before the upload. If storage then fails the
    caller gets 503 storage_unavailable and the draft stays in the member's
    list without an attachment (submission will ask for a receipt).
    """
    if receipt is None:
        raise missing_receipt("A receipt file is required.")
    fields = validate_expense_input(raw)
    assert_valid_receipt_file(receipt)
    expense_date = parse_expense_date(fields.expense_date)
    ensure_references_active(db, fields.department_id, fields.project_id)

    now = _now_utc()
    expense = Expense(
        public_id=next_public_expense_id(db, now.year),
        member_id=member_id,
        department_id=fields.department_id,
        project_id=fields.project_id,
        amount_minor=fields.amount_minor,
        currency_code=config.default_currency(),
        expense_date=expense_date,
        category=fields.category,
        payment_method=fields.payment_method,
        comment=fields.comment,
        status=ExpenseStatus.DRAFT,
        created_at=now,
        updated_at=now,
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    logger.info("Created draft expense %s (%s) for member %s", expense.public_id, expense.id, member_id)

    save_receipt_attachment(db, storage, expense, receipt)
    db.refresh(expense)
    return expense


def update_draft_expense(
    db: Session,
    storage: ReceiptStorage,
    member_id: uuid.UUID,
    expense_id: Any,
    raw: ExpenseInput,
    receipt: Optional[ReceiptUpload] = None,
) -> Expense:
    fields = validate_expense_input(raw)
    if receipt is not None:
        assert_valid_receipt_file(receipt)
    expense_date = parse_expense_date(fields.expense_date)

    expense = require_owned_draft_expense(db, member_id, expense_id)
    ensure_references_active(db, fields.department_id, fields.project_id)

    changed = transition_status(
        db,
        expense.id,
        ExpenseStatus.DRAFT,
        {
            "department_id": fields.department_id,
            "project_id": fields.project_id,
            "amount_minor": fields.amount_minor,
            "expense_date": expense_date,
            "category": fields.category,
            "payment_method": fields.payment_method,
            "comment": fields.comment,
            "updated_at": _now_utc(),
        },
        member_id=member_id,
    )
    if not changed:
        # re-run the checks to report what happened in between
        require_owned_draft_expense(db, member_id, expense.id)
        raise expense_not_draft()

    db.refresh(expense)
    if receipt is not None:
        save_receipt_attachment(db, storage, expense, receipt)
        db.refresh(expense)
    return expense


def delete_draft_expense(db: Session, member_id: uuid.UUID, expense_id: Any) -> None:
    expense = require_owned_draft_expense(db, member_id, expense_id)
    now = _now_utc()
    deleted = transition_status(
        db, expense.id, ExpenseStatus.DRAFT, {"deleted_at": now, "updated_at": now}, member_id=member_id
    )
    if not deleted:
        require_owned_draft_expense(db, member_id, expense.id)
        raise expense_not_draft()
    logger.info("Deleted draft expense %s", expense.id)


def submit_draft_expense(db: Session, member_id: uuid.UUID, expense_id: Any) -> Expense:
    expense = require_owned_draft_expense(db, member_id, expense_id)

    has_receipt = db.execute(
        select(ExpenseAttachment.id).where(ExpenseAttachment.expense_id == expense.id)
    ).first()
    if not has_receipt:
        raise missing_receipt()

    now = _now_utc()
    submitted = transition_status(
        db,
        expense.id,
        ExpenseStatus.DRAFT,
        {"status": ExpenseStatus.SUBMITTED, "submitted_at": now, "updated_at": now},
        member_id=member_id,
    )
    if not submitted:
        require_owned_draft_expense(db, member_id, expense.id)
        raise expense_not_draft()

    db.refresh(expense)
    logger.info("Submitted expense %s", expense.public_id)
    return expense
