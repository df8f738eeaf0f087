# tests/conftest.py
from __future__ import annotations

from typing import Dict, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import expense_desk.models  # noqa: F401
from expense_desk.db import Base, enable_sqlite_foreign_keys
from expense_desk.dependencies import get_db, get_receipt_storage
from expense_desk.errors import StorageError
from expense_desk.main import app
from expense_desk.models.organization import Department, Project
from expense_desk.models.rbac import User
from expense_desk.services.expense_validation import ExpenseInput, ReceiptUpload
from expense_desk.services.invites import reset_fallback_invite_codes
from expense_desk.services.roles import add_role_assignment
from expense_desk.services.storage import ReceiptStorage, StoredObject
from expense_desk.services.users import create_user

_ENV_VARS = (
    "AUTH_SIGNUP_MODE",
    "INVITE_CODES",
    "AUTH_ADMIN_EMAIL",
    "AUTH_ADMIN_EMAILS",
    "API_KEY_PEPPER",
    "DEFAULT_CURRENCY",
    "INVITE_DEFAULT_EXPIRY_DAYS",
)


class InMemoryReceiptStorage(ReceiptStorage):
    """Dict-backed store with switches to make put/get/delete fail."""

    bucket = "test-receipts"

    def __init__(self):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.deleted = []
        self.fail_put = False
        self.fail_get = False
        self.fail_delete = False

    def put(self, key: str, data: bytes, content_type: str) -> None:
        if self.fail_put:
            raise StorageError("upload refused")
        self.objects[key] = (bytes(data), content_type)

    def get(self, key: str) -> Optional[StoredObject]:
        if self.fail_get:
            raise StorageError("download refused")
        if key not in self.objects:
            return None
        data, content_type = self.objects[key]
        return StoredObject(content_type=content_type, content_length=len(data), body=iter([data]))

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise StorageError("delete refused")
        self.objects.pop(key, None)
        self.deleted.append(key)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_fallback_invite_codes()
    yield
    reset_fallback_invite_codes()


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture()
def storage():
    return InMemoryReceiptStorage()


@pytest.fixture()
def client(db, storage):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_receipt_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


# ---- principals ----------------------------------------------------------------

class Account:
    def __init__(self, user: User, api_key: str):
        self.user = user
        self.api_key = api_key

    @property
    def id(self):
        return self.user.id

    @property
    def headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key}


def make_account(db, email: str, role: Optional[str] = None, assigned: Tuple[str, ...] = ()) -> Account:
    user, api_key = create_user(db, email=email, display_name=email.split("@")[0], role=role)
    for name in assigned:
        add_role_assignment(db, user.id, name)
    return Account(user, api_key)


@pytest.fixture()
def member(db):
    return make_account(db, "maria@example.com")


@pytest.fixture()
def other_member(db):
    return make_account(db, "jonas@example.com")


@pytest.fixture()
def finance(db):
    return make_account(db, "fin@example.com", role="finance")


@pytest.fixture()
def admin(db):
    return make_account(db, "root@example.com", assigned=("admin",))


# ---- organization ----------------------------------------------------------------

@pytest.fixture()
def department(db):
    dep = Department(name="Engineering", is_active=True)
    db.add(dep)
    db.commit()
    db.refresh(dep)
    return dep


@pytest.fixture()
def project(db, department):
    proj = Project(department_id=department.id, name="Platform", is_active=True)
    db.add(proj)
    db.commit()
    db.refresh(proj)
    return proj


# ---- expense payloads ------------------------------------------------------------

def meal_input(**overrides) -> ExpenseInput:
    values = dict(
        amount="25.00",
        expense_date="2026-02-24",
        category="Meals",
        payment_method="personal_card",
        comment=None,
        department_id=None,
        project_id=None,
    )
    values.update(overrides)
    return ExpenseInput(**values)


def jpeg_receipt(name: str = "food.jpg", size: int = 2048) -> ReceiptUpload:
    return ReceiptUpload(filename=name, content_type="image/jpeg", data=b"\xff" * size)


def pdf_receipt(name: str = "receipt.pdf", size: int = 512) -> ReceiptUpload:
    return ReceiptUpload(filename=name, content_type="application/pdf", data=b"%PDF" + b"0" * (size - 4))
