# expense_desk/api/receipts.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from expense_desk.api.rbac import Principal, require_operation
from expense_desk.dependencies import get_db, get_receipt_storage
from expense_desk.errors import ExpenseError, StorageError
from expense_desk.services.attachments import get_receipt_for_viewer, storage_unavailable
from expense_desk.services.roles import Operation
from expense_desk.services.storage import ReceiptStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/expenses", tags=["Receipts"])


@router.get("/{expense_id}/receipt")
def download_receipt(
    expense_id: str,
    db: Session = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    principal: Principal = Depends(require_operation(Operation.VIEW_RECEIPT)),
):
    """Stream the receipt to its owner or to finance staff."""
    location = get_receipt_for_viewer(db, expense_id, principal.id, principal.roles)

    try:
        stored = storage.get(location.storage_key)
    except StorageError as exc:
        logger.error("Receipt download failed for %s: %s", location.storage_key, exc)
        raise storage_unavailable()
    if stored is None:
        logger.warning("Receipt object missing from storage: %s", location.storage_key)
        raise ExpenseError(404, "receipt_not_found", "Receipt was not found.")

    # original_filename is sanitized on upload, so it is safe inside the header
    headers = {
        "Content-Disposition": f'inline; filename="{location.original_filename}"',
        "Cache-Control": "private, no-store",
        "Content-Length": str(stored.content_length),
    }
    return StreamingResponse(stored.body, media_type=location.mime_type, headers=headers)
