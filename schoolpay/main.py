# schoolpay/main.py - FastAPI application: middleware, error rendering and routers
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging
import traceback
import time

from schoolpay.core.config import settings
from schoolpay.core.db import db_manager, get_engine, health_check as db_health_check
from schoolpay.core.exceptions import SchoolPayError
from schoolpay.models import Base
from schoolpay.api.routers import auth, users, payments, notifications


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting SchoolPay API...")
    logger.info(f"Environment: {settings.ENV}")

    engine = get_engine()

    # Create tables if they don't exist (for development)
    if settings.is_development:
        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

    if not settings.webhook_signature_required:
        logger.warning("FEDAPAY_WEBHOOK_SECRET is not set; payment webhooks are accepted unsigned")

    yield

    logger.info("Shutting down SchoolPay API...")
    db_manager.close()


app = FastAPI(
    title=settings.API_TITLE,
    description="School fees, payment reconciliation and account provisioning",
    version=settings.API_VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url=None,
    lifespan=lifespan
)


def error_response(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


# Request logging middleware - BEFORE CORS
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log requests, answer bare OPTIONS and attach CORS headers to every response"""
    start_time = time.time()
    cors_headers = settings.cors_headers(request.headers.get("origin"))

    logger.info(f"Incoming {request.method} {request.url.path}")

    if request.method == "OPTIONS":
        return Response(status_code=200, headers=cors_headers)

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"Error processing {request.method} {request.url.path}: {str(e)}")
        logger.error(traceback.format_exc())
        raise

    for key, value in cors_headers.items():
        response.headers.setdefault(key, value)

    process_time = time.time() - start_time
    logger.info(f"Response {response.status_code} for {request.method} {request.url.path} ({process_time:.3f}s)")
    return response


# CORS middleware - MUST be added after logging middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=settings.cors_allow_headers,
    max_age=3600,
)


@app.exception_handler(SchoolPayError)
async def schoolpay_error_handler(request: Request, exc: SchoolPayError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed or incomplete input is a 400 with a single readable message"""
    errors = exc.errors()

    if any(err.get("type") == "json_invalid" for err in errors):
        return error_response(400, "Invalid JSON body")

    if any(err.get("type") in ("missing", "string_too_short") or err.get("input") == "" for err in errors):
        return error_response(400, "Missing required fields")

    first = errors[0] if errors else {}
    cause = (first.get("ctx") or {}).get("error")
    if isinstance(cause, Exception):
        return error_response(400, str(cause))

    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return error_response(400, f"Invalid value for '{field}': {message}" if field else message)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Callers are administrators or the gateway, so the raw message is returned"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}")
    logger.error(traceback.format_exc())
    return error_response(500, str(exc), headers=settings.cors_headers(request.headers.get("origin")))


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENV,
        "version": settings.API_VERSION,
        "database": db_health_check(),
    }


logger.info("Registering API routers...")
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api", tags=["Accounts"])
app.include_router(payments.router, prefix="/api", tags=["Payments"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
logger.info("All routers registered successfully")
