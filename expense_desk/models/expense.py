# expense_desk/models/expense.py
from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, Uuid,
    Enum as SAEnum, func,
)
from sqlalchemy.orm import relationship

from expense_desk.db import Base
from expense_desk.models.rbac import _now_utc


class ExpenseStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    RECEIVED = "received"


class PaymentMethod(str, enum.Enum):
    WORK_CARD = "work_card"
    PERSONAL_CARD = "personal_card"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Expense(Base):
    __tablename__ = "expense"
    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_expense_amount_positive"),
        Index("expense_status_submitted_at_idx", "status", "submitted_at"),
        Index("expense_member_created_at_idx", "member_id", "created_at"),
        Index("expense_project_created_at_idx", "project_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    public_id = Column(String(32), nullable=False, unique=True)
    member_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    department_id = Column(Uuid, ForeignKey("department.id", ondelete="RESTRICT"), nullable=True)
    project_id = Column(Uuid, ForeignKey("project.id", ondelete="RESTRICT"), nullable=True)

    # Money is kept in minor units (cents); never floats.
    amount_minor = Column(Integer, nullable=False)
    currency_code = Column(String(3), nullable=False, default="EUR", server_default="EUR")

    expense_date = Column(Date, nullable=False)
    category = Column(String(50), nullable=False)
    payment_method = Column(
        SAEnum(PaymentMethod, name="payment_method", values_callable=_enum_values),
        nullable=False,
    )
    comment = Column(Text, nullable=True)

    status = Column(
        SAEnum(ExpenseStatus, name="expense_status", values_callable=_enum_values),
        nullable=False, default=ExpenseStatus.DRAFT, server_default=ExpenseStatus.DRAFT.value,
    )
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now()
    )

    attachment = relationship(
        "ExpenseAttachment",
        back_populates="expense",
        uselist=False,
        cascade="all, delete-orphan",
    )
    member = relationship("User")
    department = relationship("Department")
    project = relationship("Project")


class ExpenseAttachment(Base):
    """The single receipt of an expense (unique expense_id enforces 1:0..1)."""
    __tablename__ = "expense_attachment"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    expense_id = Column(
        Uuid, ForeignKey("expense.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    storage_bucket = Column(Text, nullable=False)
    storage_key = Column(Text, nullable=False)
    mime_type = Column(String(128), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    original_filename = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now())

    expense = relationship("Expense", back_populates="attachment")
