# expense_desk/services/expense_validation.py
"""
Normalization of raw expense fields and receipt files.

Everything here is pure: a raw `ExpenseInput` either becomes a fully
normalized `ValidatedExpense` or an `ExpenseError` (HTTP 400) is raised.
No partially normalized payload is ever returned.
"""
from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import PurePath
from typing import Any, Optional

from expense_desk.errors import ExpenseError
from expense_desk.models.expense import PaymentMethod

MAX_RECEIPT_BYTES = 10 * 1024 * 1024
MAX_CATEGORY_LENGTH = 50
MAX_COMMENT_LENGTH = 500
MAX_AMOUNT_MINOR = 2_147_483_647

# declared MIME type -> file extensions allowed with it
RECEIPT_EXTENSIONS_BY_MIME = {
    "image/jpeg": frozenset({".jpg", ".jpeg"}),
    "image/png": frozenset({".png"}),
    "application/pdf": frozenset({".pdf"}),
}

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-8][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass
class ExpenseInput:
    """Raw, untrusted field values as they arrive from a form or JSON body."""
    amount: Any = None
    expense_date: Any = None
    category: Any = None
    payment_method: Any = None
    comment: Any = None
    department_id: Any = None
    project_id: Any = None


@dataclass(frozen=True)
class ValidatedExpense:
    amount_minor: int
    expense_date: str
    category: str
    payment_method: PaymentMethod
    comment: Optional[str]
    department_id: Optional[uuid.UUID]
    project_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class ReceiptUpload:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _invalid(code: str, message: str) -> ExpenseError:
    return ExpenseError(400, code, message)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def is_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


# ---- Field parsers -----------------------------------------------------------

def parse_amount_minor(value: Any) -> int:
    try:
        amount = Decimal(_as_text(value))
    except InvalidOperation:
        raise _invalid("invalid_amount", "Amount must be greater than 0.")
    if not amount.is_finite() or amount <= 0:
        raise _invalid("invalid_amount", "Amount must be greater than 0.")

    try:
        minor = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise _invalid("invalid_amount", "Amount is too large.")
    if minor <= 0:
        raise _invalid("invalid_amount", "Amount must be greater than 0.")
    # amount_minor is a 32-bit INTEGER column
    if minor > MAX_AMOUNT_MINOR:
        raise _invalid("invalid_amount", "Amount is too large.")
    return minor


def parse_expense_date_text(value: Any) -> str:
    text = _as_text(value)
    if not _DATE_RE.match(text):
        raise _invalid("invalid_expense_date", "Expense date must use YYYY-MM-DD.")
    return text


def parse_expense_date(value: str) -> date:
    """Turn an already shape-checked date string into a `date` for storage."""
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise _invalid("invalid_expense_date", "Expense date must be a real calendar date.")


def parse_category(value: Any) -> str:
    text = _as_text(value)
    if not text or len(text) > MAX_CATEGORY_LENGTH:
        raise _invalid("invalid_category", "Category is required and must be 50 chars or fewer.")
    return text


def parse_payment_method(value: Any) -> PaymentMethod:
    try:
        return PaymentMethod(_as_text(value).lower())
    except ValueError:
        raise _invalid("invalid_payment_method", "Payment method must be work_card or personal_card.")


def parse_comment(value: Any) -> Optional[str]:
    text = _as_text(value)
    if not text:
        return None
    if len(text) > MAX_COMMENT_LENGTH:
        raise _invalid("invalid_comment", "Comment must be 500 chars or fewer.")
    return text


def parse_optional_identifier(value: Any) -> Optional[uuid.UUID]:
    """Blank means "clear the association"; anything else must look like a UUID."""
    text = _as_text(value)
    if not text:
        return None
    if not is_uuid(text):
        raise _invalid("invalid_identifier", "Department/project identifiers must be UUIDs.")
    return uuid.UUID(text)


# ---- Public API ----------------------------------------------------------------

def validate_expense_input(raw: ExpenseInput) -> ValidatedExpense:
    return ValidatedExpense(
        amount_minor=parse_amount_minor(raw.amount),
        expense_date=parse_expense_date_text(raw.expense_date),
        category=parse_category(raw.category),
        payment_method=parse_payment_method(raw.payment_method),
        comment=parse_comment(raw.comment),
        department_id=parse_optional_identifier(raw.department_id),
        project_id=parse_optional_identifier(raw.project_id),
    )


def receipt_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def assert_valid_receipt_file(receipt: ReceiptUpload) -> None:
    if receipt.size <= 0:
        raise _invalid("empty_receipt", "Receipt file is required.")
    if receipt.size > MAX_RECEIPT_BYTES:
        raise _invalid("receipt_too_large", "Receipt must be 10MB or smaller.")

    mime_type = (receipt.content_type or "").strip().lower()
    extension = receipt_extension(receipt.filename)
    if extension not in RECEIPT_EXTENSIONS_BY_MIME.get(mime_type, ()):
        raise _invalid("invalid_receipt_type", "Receipt must be JPG, PNG, or PDF.")
