import logging
from typing import Any, Dict, List

import psycopg2
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.api import db
from src.api.schemas import APIError, User, UserCreate

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "Users", "description": "List and create users."},
]

app = FastAPI(
    title="Users API",
    description="Minimal users service backed by a PostgreSQL connection pool.",
    version="1.0.0",
    openapi_tags=openapi_tags,
)

_ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": APIError, "description": "Statement failed"},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": APIError, "description": "Database unavailable"},
}


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts) or "Invalid request"


# Error mapping: every per-request failure ends in a JSON response, never a crash.

@app.exception_handler(RequestValidationError)
async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, _describe_validation(exc))


@app.exception_handler(db.DatabaseUnavailableError)
async def _on_db_unavailable(request: Request, exc: db.DatabaseUnavailableError) -> JSONResponse:
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Database unavailable")


@app.exception_handler(psycopg2.OperationalError)
@app.exception_handler(psycopg2.InterfaceError)
async def _on_db_connection_error(request: Request, exc: psycopg2.Error) -> JSONResponse:
    logger.warning("%s %s: database connection failed: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "Database unavailable")


@app.exception_handler(db.RejectedInputError)
async def _on_rejected_input(request: Request, exc: db.RejectedInputError) -> JSONResponse:
    logger.info("%s %s: input rejected by driver: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_400_BAD_REQUEST, f"Invalid input: {exc}")


@app.exception_handler(psycopg2.IntegrityError)
async def _on_integrity_error(request: Request, exc: psycopg2.IntegrityError) -> JSONResponse:
    logger.info("%s %s: constraint violation: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_400_BAD_REQUEST, "Request violates a database constraint")


@app.exception_handler(psycopg2.Error)
async def _on_db_error(request: Request, exc: psycopg2.Error) -> JSONResponse:
    logger.exception("%s %s: statement failed", request.method, request.url.path, exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")


@app.exception_handler(db.DatabaseError)
async def _on_unexpected_result(request: Request, exc: db.DatabaseError) -> JSONResponse:
    logger.error("%s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error")


@app.on_event("startup")
def _startup() -> None:
    try:
        db.init_db_pool()
    except psycopg2.OperationalError as exc:
        # The pool is retried lazily by the first request that needs it.
        logger.warning("Database unreachable at startup: %s", exc)


@app.on_event("shutdown")
def _shutdown() -> None:
    db.close_db_pool()


# =========================
# Users
# =========================

@app.get(
    "/users",
    response_model=List[User],
    tags=["Users"],
    summary="List users",
    responses=_ERROR_RESPONSES,
)
def list_users() -> List[Dict[str, Any]]:
    """Return every user. No ordering is applied; rows come back as the database yields them."""
    return db.fetch_all("SELECT id, name, email FROM users")


@app.post(
    "/users",
    response_model=User,
    status_code=status.HTTP_201_CREATED,
    tags=["Users"],
    summary="Create user",
    responses={status.HTTP_400_BAD_REQUEST: {"model": APIError}, **_ERROR_RESPONSES},
)
def create_user(payload: UserCreate) -> User:
    """Insert a user and return it with the identifier the database assigned."""
    row = db.execute_returning_one(
        "INSERT INTO users (name, email) VALUES (%s, %s) RETURNING id",
        [payload.name, payload.email],
    )
    logger.info("Created user id=%s", row["id"])
    return User(id=row["id"], name=payload.name, email=payload.email)
