import uuid

from sqlalchemy import Column, DateTime, String, Text, Uuid, func

from expense_desk.db import Base
from expense_desk.models.rbac import _now_utc


class Invite(Base):
    __tablename__ = "invite"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token = Column(Text, nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    created_by_user_id = Column(Uuid, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now_utc, server_default=func.now())
