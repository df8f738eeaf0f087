# expense_desk/errors.py
"""
Typed errors and their HTTP mapping.

Domain code raises `ExpenseError` with a stable, machine-readable `code`
(e.g. ``invalid_amount``, ``expense_not_draft``) and the HTTP status it maps
to. Anything else that escapes a request is classified by `to_ui_error`,
which never leaks internals: the caller gets a generic message plus a
request id that matches the server log line.

    status  kind
    ------  ----------------------
    400     validation
    401     authentication
    403     forbidden
    404     not_found
    409     conflict
    503     dependency_unavailable
    500     unknown
"""
from __future__ import annotations

import enum
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    DEPENDENCY_UNAVAILABLE = "dependency_unavailable"
    UNKNOWN = "unknown"


_KIND_BY_STATUS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    503: ErrorKind.DEPENDENCY_UNAVAILABLE,
}

_STATUS_BY_KIND = {kind: status for status, kind in _KIND_BY_STATUS.items()}
_STATUS_BY_KIND[ErrorKind.UNKNOWN] = 500


def kind_for_status(status_code: int) -> ErrorKind:
    return _KIND_BY_STATUS.get(status_code, ErrorKind.UNKNOWN)


def status_for_kind(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND[kind]


class ExpenseError(Exception):
    """A domain failure with a stable code; safe to show to the caller."""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    @property
    def kind(self) -> ErrorKind:
        return kind_for_status(self.status_code)

    def __repr__(self) -> str:
        return f"ExpenseError({self.status_code}, {self.code!r}, {self.message!r})"


class StorageError(Exception):
    """The receipt storage backend failed (network, disk, permissions...)."""


# ---- Classification of unexpected failures ----------------------------------

@dataclass(frozen=True)
class UiError:
    kind: ErrorKind
    code: str
    message: str
    request_id: str

    @property
    def status_code(self) -> int:
        return status_for_kind(self.kind)


_UNAVAILABLE_MESSAGE = "Service is temporarily unavailable. Please retry in a moment."


def make_request_id() -> str:
    return f"req_{int(time.time() * 1000):x}_{secrets.token_hex(3)}"


def classify_error(error: BaseException) -> ErrorKind:
    if isinstance(error, ExpenseError):
        return error.kind
    if isinstance(error, IntegrityError):
        return ErrorKind.CONFLICT
    if isinstance(error, (OperationalError, StorageError)):
        return ErrorKind.DEPENDENCY_UNAVAILABLE
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return ErrorKind.DEPENDENCY_UNAVAILABLE
    return ErrorKind.UNKNOWN


def to_ui_error(
    error: BaseException,
    fallback_message: str,
    request_id: Optional[str] = None,
) -> UiError:
    request_id = request_id or make_request_id()
    if isinstance(error, ExpenseError):
        return UiError(error.kind, error.code, error.message, request_id)

    kind = classify_error(error)
    if kind == ErrorKind.CONFLICT:
        return UiError(kind, "conflict", "The record conflicts with existing data.", request_id)
    if kind == ErrorKind.DEPENDENCY_UNAVAILABLE:
        return UiError(kind, "dependency_unavailable", _UNAVAILABLE_MESSAGE, request_id)
    return UiError(kind, "unknown", fallback_message, request_id)


def log_server_error(context: str, error: BaseException, request_id: str) -> None:
    logger.error(
        "[%s] %s: %s",
        request_id,
        context,
        type(error).__name__,
        exc_info=(type(error), error, error.__traceback__),
    )
