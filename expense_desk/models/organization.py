from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Uuid, func, true

from expense_desk.db import Base
from expense_desk.models.rbac import _now_utc


class Department(Base):
    __tablename__ = "department"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(80), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now())


class Project(Base):
    __tablename__ = "project"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    department_id = Column(
        Uuid, ForeignKey("department.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now())
