# expense_desk/models/__init__.py
"""
Central model registry.

Import this once at startup (main.py, alembic env, tests) so SQLAlchemy sees
every mapped class before relationships are configured.
"""
from expense_desk.db import Base  # noqa: F401  re-export Base

from .rbac import User, RoleAssignment  # noqa: F401
from .organization import Department, Project  # noqa: F401
from .expense import Expense, ExpenseAttachment, ExpenseStatus, PaymentMethod  # noqa: F401
from .invite import Invite  # noqa: F401
