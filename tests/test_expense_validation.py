# tests/test_expense_validation.py
from __future__ import annotations

import uuid

import pytest

from expense_desk.errors import ExpenseError
from expense_desk.models.expense import PaymentMethod
from expense_desk.services.expense_validation import (
    MAX_RECEIPT_BYTES,
    ReceiptUpload,
    assert_valid_receipt_file,
    is_uuid,
    parse_amount_minor,
    parse_expense_date,
    validate_expense_input,
)
from conftest import meal_input


def _code(exc_info) -> str:
    return exc_info.value.code


def test_valid_input_is_fully_normalized():
    dep = uuid.uuid4()
    out = validate_expense_input(
        meal_input(
            amount=" 12.50 ",
            category="  Meals ",
            payment_method="WORK_CARD",
            comment="  team lunch  ",
            department_id=str(dep),
            project_id="",
        )
    )
    assert out.amount_minor == 1250
    assert out.expense_date == "2026-02-24"
    assert out.category == "Meals"
    assert out.payment_method == PaymentMethod.WORK_CARD
    assert out.comment == "team lunch"
    assert out.department_id == dep
    assert out.project_id is None


@pytest.mark.parametrize("raw,expected", [("12.50", 1250), ("0.01", 1), ("7", 700), ("19.999", 2000), (3.5, 350)])
def test_amount_converts_to_minor_units(raw, expected):
    assert parse_amount_minor(raw) == expected


@pytest.mark.parametrize("raw", ["0", "-5", "", None, "abc", "NaN", "Infinity", "0.004"])
def test_amount_rejects_non_positive_or_garbage(raw):
    with pytest.raises(ExpenseError) as exc:
        parse_amount_minor(raw)
    assert _code(exc) == "invalid_amount"
    assert exc.value.status_code == 400


def test_amount_rejects_values_beyond_column_range():
    with pytest.raises(ExpenseError) as exc:
        parse_amount_minor("99999999999")
    assert _code(exc) == "invalid_amount"


@pytest.mark.parametrize("raw", ["24-02-2026", "2026/02/24", "2026-2-24", "", None, "2026-02-24T10:00"])
def test_expense_date_must_be_yyyy_mm_dd(raw):
    with pytest.raises(ExpenseError) as exc:
        validate_expense_input(meal_input(expense_date=raw))
    assert _code(exc) == "invalid_expense_date"


def test_expense_date_shape_check_is_lenient_on_calendar():
    # shape only: the calendar check happens when the value is stored
    out = validate_expense_input(meal_input(expense_date="2026-02-30"))
    assert out.expense_date == "2026-02-30"
    with pytest.raises(ExpenseError) as exc:
        parse_expense_date(out.expense_date)
    assert _code(exc) == "invalid_expense_date"


@pytest.mark.parametrize("raw", ["", "   ", None, "x" * 51])
def test_category_required_and_bounded(raw):
    with pytest.raises(ExpenseError) as exc:
        validate_expense_input(meal_input(category=raw))
    assert _code(exc) == "invalid_category"


def test_category_of_exactly_fifty_chars_is_fine():
    assert validate_expense_input(meal_input(category="c" * 50)).category == "c" * 50


@pytest.mark.parametrize("raw", ["cash", "", None, "work card"])
def test_payment_method_enumeration(raw):
    with pytest.raises(ExpenseError) as exc:
        validate_expense_input(meal_input(payment_method=raw))
    assert _code(exc) == "invalid_payment_method"


def test_comment_blank_becomes_none_and_long_is_rejected():
    assert validate_expense_input(meal_input(comment="   ")).comment is None
    with pytest.raises(ExpenseError) as exc:
        validate_expense_input(meal_input(comment="y" * 501))
    assert _code(exc) == "invalid_comment"


def test_identifiers_must_look_like_uuids():
    with pytest.raises(ExpenseError) as exc:
        validate_expense_input(meal_input(project_id="project-7"))
    assert _code(exc) == "invalid_identifier"
    assert is_uuid(str(uuid.uuid4()))
    assert is_uuid(str(uuid.uuid4()).upper())
    assert not is_uuid("00000000-0000-0000-0000-000000000000")


def test_first_failure_wins_and_nothing_partial_is_returned():
    with pytest.raises(ExpenseError) as exc:
        validate_expense_input(meal_input(amount="-1", category=""))
    assert _code(exc) == "invalid_amount"


# ---- receipts ------------------------------------------------------------------

def test_pdf_receipt_is_accepted():
    assert_valid_receipt_file(ReceiptUpload("receipt.pdf", "application/pdf", b"%PDF-1.4"))


def test_uppercase_extension_and_mime_are_accepted():
    assert_valid_receipt_file(ReceiptUpload("SCAN.JPEG", "IMAGE/JPEG", b"\xff\xd8"))


@pytest.mark.parametrize(
    "filename,mime",
    [
        ("receipt.gif", "image/gif"),
        ("receipt.pdf", "image/png"),   # allowed extension, mismatched mime
        ("scan.jpg", "application/pdf"),
        ("photo.png", "image/jpeg"),
        ("receipt.exe", "application/pdf"),
        ("receipt", "application/pdf"),
    ],
)
def test_receipt_type_gate(filename, mime):
    with pytest.raises(ExpenseError) as exc:
        assert_valid_receipt_file(ReceiptUpload(filename, mime, b"data"))
    assert _code(exc) == "invalid_receipt_type"


def test_empty_receipt_rejected():
    with pytest.raises(ExpenseError) as exc:
        assert_valid_receipt_file(ReceiptUpload("receipt.pdf", "application/pdf", b""))
    assert _code(exc) == "empty_receipt"


def test_receipt_size_limit_is_inclusive():
    assert_valid_receipt_file(ReceiptUpload("big.png", "image/png", b"0" * MAX_RECEIPT_BYTES))
    with pytest.raises(ExpenseError) as exc:
        assert_valid_receipt_file(ReceiptUpload("big.png", "image/png", b"0" * (MAX_RECEIPT_BYTES + 1)))
    assert _code(exc) == "receipt_too_large"


@pytest.mark.parametrize(
    "filename,mime",
    [
        ("lunch.jpg", "image/jpeg"),
        ("lunch.jpeg", "image/jpeg"),
        ("table.png", "image/png"),
        ("invoice.pdf", "application/pdf"),
    ],
)
def test_receipt_extension_matching_its_mime_is_accepted(filename, mime):
    assert_valid_receipt_file(ReceiptUpload(filename, mime, b"data"))
