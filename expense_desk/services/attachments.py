# expense_desk/services/attachments.py
"""
Receipt attachment bookkeeping.

An expense has at most one `ExpenseAttachment` row. Replacing a receipt
uploads the new object first, repoints the row, and only then removes the
old object. That last delete is best-effort: its outcome is a
`CleanupResult` that gets logged and dropped, never raised.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_desk.errors import ExpenseError, StorageError
from expense_desk.models.expense import Expense, ExpenseAttachment
from expense_desk.services.expense_validation import ReceiptUpload, is_uuid, receipt_extension
from expense_desk.services.roles import can_view_receipt
from expense_desk.services.storage import ReceiptStorage

logger = logging.getLogger(__name__)

MAX_FILENAME_LENGTH = 255
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def storage_unavailable() -> ExpenseError:
    return ExpenseError(503, "storage_unavailable", "Receipt storage is temporarily unavailable.")


def sanitize_filename(name: Optional[str]) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name or "")[:MAX_FILENAME_LENGTH]
    return cleaned or "receipt"


def build_storage_key(expense_id: uuid.UUID, filename: str, now: Optional[datetime] = None) -> str:
    """receipts/<year>/<expense id>-<random uuid><ext>"""
    now = now or _now_utc()
    return f"receipts/{now.year}/{expense_id}-{uuid.uuid4()}{receipt_extension(filename)}"


# ---- Best-effort cleanup -------------------------------------------------------

@dataclass(frozen=True)
class CleanupResult:
    key: str
    deleted: bool
    error: Optional[str] = None


def delete_receipt_safely(storage: ReceiptStorage, key: str) -> CleanupResult:
    try:
        storage.delete(key)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Could not delete orphaned receipt object %s: %s", key, exc)
        return CleanupResult(key=key, deleted=False, error=str(exc) or type(exc).__name__)
    return CleanupResult(key=key, deleted=True)


# ---- Attach / replace --------------------------------------------------------

def save_receipt_attachment(
    db: Session,
    storage: ReceiptStorage,
    expense: Expense,
    receipt: ReceiptUpload,
) -> ExpenseAttachment:
    """
    Store `receipt` as the expense's attachment, inserting or replacing the row.

    Raises 503 storage_unavailable when the upload fails; in that case the
    attachment row is left untouched.
    """
    filename = sanitize_filename(receipt.filename)
    mime_type = receipt.content_type.strip().lower()
    key = build_storage_key(expense.id, filename)

    try:
        storage.put(key, receipt.data, mime_type)
    except (StorageError, OSError) as exc:
        logger.error("Receipt upload failed for expense %s: %s", expense.id, exc)
        raise storage_unavailable()

    attachment = (
        db.execute(select(ExpenseAttachment).where(ExpenseAttachment.expense_id == expense.id))
        .scalars()
        .first()
    )
    previous_key = attachment.storage_key if attachment is not None else None

    try:
        if attachment is None:
            attachment = ExpenseAttachment(expense_id=expense.id)
            db.add(attachment)
        attachment.storage_bucket = storage.bucket
        attachment.storage_key = key
        attachment.mime_type = mime_type
        attachment.size_bytes = receipt.size
        attachment.original_filename = filename
        db.commit()
    except Exception:
        db.rollback()
        delete_receipt_safely(storage, key)
        raise

    db.refresh(attachment)
    if previous_key and previous_key != key:
        result = delete_receipt_safely(storage, previous_key)
        logger.debug("Replaced receipt for expense %s (old object deleted=%s)", expense.id, result.deleted)
    return attachment


# ---- Viewing -----------------------------------------------------------------

@dataclass(frozen=True)
class ReceiptLocation:
    storage_bucket: str
    storage_key: str
    mime_type: str
    original_filename: str
    size_bytes: int


def get_receipt_for_viewer(
    db: Session,
    expense_id: str,
    viewer_id: uuid.UUID,
    viewer_roles: Iterable[str],
) -> ReceiptLocation:
    not_found = ExpenseError(404, "receipt_not_found", "Receipt was not found.")
    if not is_uuid(str(expense_id)):
        raise not_found

    row = db.execute(
        select(Expense.member_id, ExpenseAttachment)
        .join(ExpenseAttachment, ExpenseAttachment.expense_id == Expense.id)
        .where(Expense.id == uuid.UUID(str(expense_id)), Expense.deleted_at.is_(None))
    ).first()
    if row is None:
        raise not_found

    owner_id, attachment = row
    if not can_view_receipt(owner_id, viewer_id, viewer_roles):
        raise ExpenseError(403, "forbidden", "You do not have access to this receipt.")

    return ReceiptLocation(
        storage_bucket=attachment.storage_bucket,
        storage_key=attachment.storage_key,
        mime_type=attachment.mime_type,
        original_filename=attachment.original_filename,
        size_bytes=attachment.size_bytes,
    )
