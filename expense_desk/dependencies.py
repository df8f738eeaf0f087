"""
Shared FastAPI dependency helpers.

`get_db` hands each request a SQLAlchemy session and closes it afterwards;
`get_receipt_storage` resolves the configured receipt object store. Tests
override both through `app.dependency_overrides`.
"""

from typing import Generator

from sqlalchemy.orm import Session

from expense_desk.db import SessionLocal
from expense_desk.services.storage import ReceiptStorage, get_storage


def get_db() -> Generator[Session, None, None]:
    """Yield a database session and close it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_receipt_storage() -> ReceiptStorage:
    return get_storage()
