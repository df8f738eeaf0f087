import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

# Ensure all SQLAlchemy models are imported so relationships resolve
import expense_desk.models  # noqa: F401

from expense_desk import config
from expense_desk.api import (
    auth,              # /auth/sign-up
    finance_expenses,  # /finance/expenses
    invites,           # /admin/invites
    member_expenses,   # /member/expenses
    rbac,              # /rbac
    receipts,          # /expenses/{id}/receipt
)
from expense_desk.api.system import router as system_router  # /health, /version
from expense_desk.db import Base, engine
from expense_desk.errors import (
    ErrorKind,
    ExpenseError,
    StorageError,
    UiError,
    log_server_error,
    make_request_id,
    to_ui_error,
)

logger = logging.getLogger("expense_desk")

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging() -> None:
    logging.basicConfig(
        level=config.log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if config.auto_create_tables():
        logger.info("AUTO_CREATE_TABLES is on; creating missing tables")
        Base.metadata.create_all(bind=engine)
    yield


configure_logging()

app = FastAPI(title="Expense Desk", lifespan=lifespan)

# --- CORS for local frontend dev ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


# --- Request correlation ids ---
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or make_request_id()
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request.state.request_id
    return response


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or make_request_id()


def _error_response(error: UiError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"error": error.message, "code": error.code, "request_id": error.request_id},
        headers={REQUEST_ID_HEADER: error.request_id},
    )


# --- Error handlers ---
@app.exception_handler(ExpenseError)
async def expense_error_handler(request: Request, exc: ExpenseError):
    error = to_ui_error(exc, exc.message, _request_id(request))
    if error.status_code >= 500:
        logger.warning("[%s] %s %s -> %s", error.request_id, request.method, request.url.path, exc.code)
    return _error_response(error)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.debug("Invalid payload on %s: %s", request.url.path, exc.errors())
    return _error_response(
        UiError(ErrorKind.VALIDATION, "invalid_payload", "Request payload is invalid.", _request_id(request))
    )


@app.exception_handler(SQLAlchemyError)
@app.exception_handler(StorageError)
async def dependency_error_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    log_server_error(f"{request.method} {request.url.path}", exc, request_id)
    return _error_response(to_ui_error(exc, "Something went wrong. Please try again.", request_id))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    request_id = _request_id(request)
    log_server_error(f"{request.method} {request.url.path}", exc, request_id)
    return _error_response(to_ui_error(exc, "Something went wrong. Please try again.", request_id))


# Routers
app.include_router(system_router)            # /health, /version
app.include_router(auth.router)              # /auth
app.include_router(rbac.router)              # /rbac
app.include_router(invites.router)           # /admin/invites
app.include_router(member_expenses.router)   # /member/expenses
app.include_router(finance_expenses.router)  # /finance/expenses
app.include_router(receipts.router)          # /expenses/{id}/receipt
