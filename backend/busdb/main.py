# backend/busdb/main.py
import logging
import os
from typing import Dict, List, Type

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .apps.accounts.router_admin import router as administrators_router
from .apps.accounts.router_public import router as auth_router
from .apps.directory.router import routers as directory_routers
from .errors import (
    AccountInactive,
    AuthorizationError,
    BusDBError,
    DanglingReference,
    DuplicateKey,
    ImmutableKey,
    InvalidTransition,
    NotFound,
    OrphanedProviderAccount,
    ReferenceInUse,
    ScopeViolation,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: List[tuple[Type[BusDBError], int]] = [
    # Literal: the 422 constant is named differently across Starlette releases.
    (ValidationError, 422),
    (DuplicateKey, status.HTTP_409_CONFLICT),
    (ReferenceInUse, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (ImmutableKey, status.HTTP_400_BAD_REQUEST),
    (DanglingReference, status.HTTP_400_BAD_REQUEST),
    (ScopeViolation, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (AccountInactive, status.HTTP_403_FORBIDDEN),
    (AuthorizationError, status.HTTP_401_UNAUTHORIZED),
    (OrphanedProviderAccount, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (TransientError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: BusDBError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to the local admin
    panel dev server.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:4200",
        "http://localhost:4200",
    ]


app = FastAPI(title="Bus Directory API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BusDBError)
async def handle_busdb_error(request: Request, exc: BusDBError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error_code": exc.code, "detail": exc.message},
        )
    headers: Dict[str, str] = {}
    if code == status.HTTP_401_UNAUTHORIZED:
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(status_code=code, content=exc.as_dict(), headers=headers or None)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Bus directory backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(administrators_router)
for directory_router in directory_routers:
    app.include_router(directory_router)
