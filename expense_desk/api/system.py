# expense_desk/api/system.py
from __future__ import annotations

import os
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from expense_desk import __version__, config
from expense_desk.dependencies import get_db

router = APIRouter(tags=["ops"])


def _db_driver_from_url(url: str | None) -> str | None:
    if not url or "://" not in url:
        return None
    scheme = url.split("://", 1)[0]  # e.g. "postgresql+psycopg2"
    if "+" in scheme:
        return scheme.split("+", 1)[1]
    return scheme


@router.get("/health")
def health(db: Session = Depends(get_db)):
    """Liveness check with a lightweight DB probe and local time."""
    tz = os.getenv("TZ", "UTC")
    now_local = datetime.now(ZoneInfo(tz)).isoformat()

    db_check = {"status": "ok", "driver": _db_driver_from_url(config.database_url())}
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:  # noqa: BLE001
        db_check["status"] = f"error: {type(e).__name__}"

    return {
        "status": "ok",
        "time": {"tz": tz, "now": now_local},
        "db": db_check,
    }


@router.get("/version")
def version():
    return {
        "app": "Expense Desk",
        "version": __version__,
        "db_driver": _db_driver_from_url(config.database_url()),
        "tz": os.getenv("TZ", "UTC"),
    }
