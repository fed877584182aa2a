from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from medaccess.api import access, audit, health, patients, records
from medaccess.api.deps import require_api_key
from medaccess.config import settings
from medaccess.database import close_db, init_db
from medaccess.errors import MedAccessError
from medaccess.logging import configure_logging, request_id_var

configure_logging()
logger = logging.getLogger("medaccess")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting MedAccess API")
    try:
        await init_db()
        logger.info("Database initialized")
    except Exception:
        logger.exception("Failed to initialize database")
        raise

    yield

    logger.info("Shutting down MedAccess API")
    try:
        await close_db()
        logger.info("Database connections closed")
    except Exception:
        logger.exception("Error closing database")
    logger.info("MedAccess API shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # MedAccess API

    Access control and audit for patient-owned medical records.

    ## Features

    - **Patient Accounts** - Patient-owned profiles with an active/inactive lifecycle
    - **Record Index** - Hash-linked record metadata with soft deletion
    - **Consent** - Provider access requests, patient approval or denial
    - **Grants** - Time-bounded, permission-scoped access, revocable at any time
    - **Break-glass** - Emergency access with mandatory justification
    - **Audit Trail** - Immutable log of every access attempt, allowed or denied
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
    request_id_var.set(request_id)
    response = await call_next(request)
    response.headers.setdefault("X-Request-Id", request_id)
    return response


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "no-store")
    if not settings.debug:
        response.headers.setdefault(
            "Strict-Transport-Security",
            "max-age=63072000; includeSubDomains; preload",
        )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(health.router)
for router in (patients.router, records.router, access.router, audit.router):
    app.include_router(
        router,
        prefix=settings.api_prefix,
        dependencies=[Depends(require_api_key)],
    )


@app.exception_handler(MedAccessError)
async def medaccess_exception_handler(_request: Request, exc: MedAccessError):
    if exc.status_code >= 500:
        logger.error("Domain error %s: %s", exc.code, exc.message)
    else:
        logger.info("Request rejected (%s): %s", exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                **exc.to_dict(),
                "type": "domain_error",
                "request_id": request_id_var.get(),
            }
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "status_code": exc.status_code,
                "type": "http_error",
                "request_id": request_id_var.get(),
            }
        },
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "message": "Validation error",
                "status_code": 422,
                "type": "validation_error",
                "details": jsonable_errors(exc),
                "request_id": request_id_var.get(),
            }
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Validation errors without the raw input objects pydantic attaches."""
    return [
        {key: value for key, value in error.items() if key in ("loc", "msg", "type")}
        for error in exc.errors()
    ]


@app.exception_handler(Exception)
async def unhandled_exception_handler(_request: Request, _exc: Exception):
    logger.exception("Unhandled error")
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "message": "Internal server error",
                "status_code": 500,
                "type": "server_error",
                "request_id": request_id_var.get(),
            }
        },
    )
