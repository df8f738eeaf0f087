# expense_desk/schemas/expense.py
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from expense_desk.models.expense import ExpenseStatus, PaymentMethod
from expense_desk.services.finance_expenses import can_correct_in_process_view


class ReceiptOut(BaseModel):
    original_filename: str
    mime_type: str
    size_bytes: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExpenseOut(BaseModel):
    """Response model for a single expense."""
    id: UUID
    public_id: str
    member_id: UUID
    department_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    amount_minor: int
    currency_code: str
    expense_date: date
    category: str
    payment_method: PaymentMethod
    comment: Optional[str] = None
    status: ExpenseStatus
    submitted_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    # ORM attribute is `attachment`
    receipt: Optional[ReceiptOut] = Field(default=None, validation_alias="attachment")

    model_config = ConfigDict(from_attributes=True)


class MemberExpenseStatsOut(BaseModel):
    submitted_count: int
    submitted_total_minor: int


class MemberExpenseListOut(BaseModel):
    expenses: List[ExpenseOut]
    stats: MemberExpenseStatsOut


# ---------- Finance ----------

class FinanceExpenseOut(ExpenseOut):
    member_email: Optional[str] = None
    department_name: Optional[str] = None
    project_name: Optional[str] = None
    can_correct: bool = False

    @classmethod
    def from_expense(cls, expense) -> "FinanceExpenseOut":
        out = cls.model_validate(expense)
        out.member_email = expense.member.email if expense.member else None
        out.department_name = expense.department.name if expense.department else None
        out.project_name = expense.project.name if expense.project else None
        out.can_correct = can_correct_in_process_view(expense.status)
        return out


class DepartmentOption(BaseModel):
    id: UUID
    name: str

    model_config = ConfigDict(from_attributes=True)


class ProjectOption(BaseModel):
    id: UUID
    name: str
    department_id: UUID

    model_config = ConfigDict(from_attributes=True)


class FinanceFiltersOut(BaseModel):
    status: str
    department_id: Optional[UUID] = None
    project_id: Optional[UUID] = None


class FinanceOptionsOut(BaseModel):
    departments: List[DepartmentOption]
    projects: List[ProjectOption]


class FinanceExpenseListOut(BaseModel):
    expenses: List[FinanceExpenseOut]
    options: FinanceOptionsOut
    filters: FinanceFiltersOut


class FinanceExpenseUpdate(BaseModel):
    """Correction body; send only the fields to change. `status` may only be "received"."""
    amount: Optional[Union[str, int, float]] = None
    expense_date: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None
    comment: Optional[str] = None
    department_id: Optional[str] = None
    project_id: Optional[str] = None
    status: Optional[str] = None

    model_config = ConfigDict(extra="forbid")
