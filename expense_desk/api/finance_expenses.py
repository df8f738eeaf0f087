# expense_desk/api/finance_expenses.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from expense_desk.api.rbac import Principal, require_operation
from expense_desk.dependencies import get_db
from expense_desk.schemas.expense import (
    DepartmentOption,
    FinanceExpenseListOut,
    FinanceExpenseOut,
    FinanceExpenseUpdate,
    FinanceFiltersOut,
    FinanceOptionsOut,
    ProjectOption,
)
from expense_desk.services.finance_expenses import (
    list_finance_expenses,
    mark_finance_expense_validated,
    parse_finance_filters,
    update_finance_expense,
)
from expense_desk.services.roles import Operation

router = APIRouter(prefix="/finance/expenses", tags=["Finance"])


@router.get("", response_model=FinanceExpenseListOut)
def list_expenses(
    status: Optional[str] = Query(None, description="all | draft | submitted | received"),
    department_id: Optional[str] = Query(None),
    project_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation(Operation.LIST_FINANCE_EXPENSES)),
):
    filters = parse_finance_filters(status, department_id, project_id)
    listing = list_finance_expenses(db, filters)
    return FinanceExpenseListOut(
        expenses=[FinanceExpenseOut.from_expense(e) for e in listing.expenses],
        options=FinanceOptionsOut(
            departments=[DepartmentOption.model_validate(d) for d in listing.departments],
            projects=[ProjectOption.model_validate(p) for p in listing.projects],
        ),
        filters=FinanceFiltersOut(
            status=filters.status,
            department_id=filters.department_id,
            project_id=filters.project_id,
        ),
    )


@router.patch("/{expense_id}", response_model=FinanceExpenseOut)
def correct_expense(
    expense_id: str,
    payload: FinanceExpenseUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation(Operation.CORRECT_EXPENSE)),
):
    expense = update_finance_expense(db, expense_id, payload.model_dump(exclude_unset=True))
    return FinanceExpenseOut.from_expense(expense)


@router.post("/{expense_id}/validate", response_model=FinanceExpenseOut)
def validate_expense(
    expense_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_operation(Operation.VALIDATE_EXPENSE)),
):
    expense = mark_finance_expense_validated(db, expense_id)
    return FinanceExpenseOut.from_expense(expense)
