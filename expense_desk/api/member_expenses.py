# expense_desk/api/member_expenses.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status
from sqlalchemy.orm import Session

from expense_desk.api.rbac import Principal, require_operation
from expense_desk.dependencies import get_db, get_receipt_storage
from expense_desk.schemas.expense import ExpenseOut, MemberExpenseListOut, MemberExpenseStatsOut
from expense_desk.services.expense_validation import MAX_RECEIPT_BYTES, ExpenseInput, ReceiptUpload
from expense_desk.services.expenses import (
    create_draft_expense,
    delete_draft_expense,
    list_member_expenses,
    submit_draft_expense,
    summarize_member_expenses,
    update_draft_expense,
)
from expense_desk.services.roles import Operation
from expense_desk.services.storage import ReceiptStorage

router = APIRouter(prefix="/member/expenses", tags=["Member expenses"])


# --- helpers -----------------------------------------------------------------
def _read_receipt(upload: Optional[UploadFile]) -> Optional[ReceiptUpload]:
    """Turn a multipart file into a ReceiptUpload; a part without a filename counts as absent."""
    if upload is None or not upload.filename:
        return None
    # one byte past the limit is enough to reject oversized files
    data = upload.file.read(MAX_RECEIPT_BYTES + 1)
    return ReceiptUpload(
        filename=upload.filename,
        content_type=upload.content_type or "",
        data=data,
    )


def _expense_input(
    amount: Optional[str],
    expense_date: Optional[str],
    category: Optional[str],
    payment_method: Optional[str],
    comment: Optional[str],
    department_id: Optional[str],
    project_id: Optional[str],
) -> ExpenseInput:
    return ExpenseInput(
        amount=amount,
        expense_date=expense_date,
        category=category,
        payment_method=payment_method,
        comment=comment,
        department_id=department_id,
        project_id=project_id,
    )


# --- endpoints ---------------------------------------------------------------
@router.get("", response_model=MemberExpenseListOut)
def list_expenses(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation(Operation.LIST_OWN_EXPENSES)),
):
    expenses = list_member_expenses(db, principal.id)
    stats = summarize_member_expenses(expenses)
    return MemberExpenseListOut(
        expenses=[ExpenseOut.model_validate(e) for e in expenses],
        stats=MemberExpenseStatsOut(
            submitted_count=stats.submitted_count,
            submitted_total_minor=stats.submitted_total_minor,
        ),
    )


@router.post("", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(
    amount: Optional[str] = Form(None),
    expense_date: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    payment_method: Optional[str] = Form(None),
    comment: Optional[str] = Form(None),
    department_id: Optional[str] = Form(None),
    project_id: Optional[str] = Form(None),
    receipt: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    principal: Principal = Depends(require_operation(Operation.CREATE_DRAFT)),
):
    raw = _expense_input(amount, expense_date, category, payment_method, comment, department_id, project_id)
    return create_draft_expense(db, storage, principal.id, raw, _read_receipt(receipt))


@router.put("/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: str,
    amount: Optional[str] = Form(None),
    expense_date: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    payment_method: Optional[str] = Form(None),
    comment: Optional[str] = Form(None),
    department_id: Optional[str] = Form(None),
    project_id: Optional[str] = Form(None),
    receipt: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    principal: Principal = Depends(require_operation(Operation.UPDATE_DRAFT)),
):
    raw = _expense_input(amount, expense_date, category, payment_method, comment, department_id, project_id)
    return update_draft_expense(db, storage, principal.id, expense_id, raw, _read_receipt(receipt))


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation(Operation.DELETE_DRAFT)),
):
    delete_draft_expense(db, principal.id, expense_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{expense_id}/submit", response_model=ExpenseOut)
def submit_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation(Operation.SUBMIT_DRAFT)),
):
    return submit_draft_expense(db, principal.id, expense_id)
