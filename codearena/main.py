"""Main FastAPI application"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from pathlib import Path
import logging
import traceback
import time
import uuid

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from codearena.config import settings
from codearena.core.clock import utcnow
from codearena.core.database import Database, init_db
from codearena.core.exceptions import BaseAPIException
from codearena.core.metrics import QUEUE_DEPTH_GAUGE, REQUEST_COUNT, REQUEST_LATENCY, WORKER_UP_GAUGE
from codearena.api.v1 import auth, contests, problems, submissions, users
from codearena.runtime import Runtime, ensure_admin
from codearena.schemas.response import ErrorResponse

# Configure logging - ensure log directory exists
_log_dir = Path(settings.get_log_file()).parent
_log_dir.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.get_log_file()),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None
)

app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _route_label(request: Request) -> str:
    # Templated path keeps metric cardinality bounded.
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


@app.middleware("http")
async def add_headers_and_timing(request: Request, call_next):
    """Add security headers, record metrics and log slow requests"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["X-Request-ID"] = request_id

    path = _route_label(request)
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(duration)

    if duration > 1.0:
        logger.warning(
            "Slow request: %s %s took %.2fs request_id=%s",
            request.method,
            request.url.path,
            duration,
            request_id,
        )

    return response


def _error_body(request: Request, error: str, details=None) -> dict:
    return ErrorResponse(
        error=error,
        details=details,
        path=request.url.path,
        timestamp=utcnow().isoformat(),
    ).model_dump()


# Exception handlers
@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions"""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        f"API Exception: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method
        }
    )

    headers = None
    retry_after = (exc.details or {}).get("retry_after") if exc.status_code == 429 else None
    if retry_after:
        headers = {"Retry-After": str(retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.message, exc.details),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(
        f"Validation error: {errors}",
        extra={"path": request.url.path, "method": request.method}
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Validation failed", errors),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Handle database errors"""
    logger.error(
        f"Database error: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "A database error occurred. Please try again later."),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.critical(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "An unexpected error occurred. Our team has been notified."),
    )


@app.on_event("startup")
async def startup_event():
    """Create the connection pool and start background services"""
    settings.validate_security_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    database = Database.from_settings(settings)
    try:
        init_db(database, settings.DB_INIT_MODE, settings.DB_REQUIRE_HEAD)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        database.dispose()
        raise

    try:
        ensure_admin(database, settings)
    except Exception as e:
        logger.error(f"Failed to create admin user: {e}")

    runtime = Runtime.build(settings, database)
    app.state.runtime = runtime
    app.state.database = runtime.database
    app.state.leaderboard = runtime.leaderboard
    app.state.worker = runtime.worker

    runtime.start(run_worker=settings.RUN_EMBEDDED_WORKER)
    WORKER_UP_GAUGE.set(1 if runtime.worker.is_running() else 0)


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background services and release the pool"""
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        runtime.stop()
    WORKER_UP_GAUGE.set(0)
    logger.info(f"Shutting down {settings.APP_NAME}")


@app.get("/health")
def health_check(request: Request):
    """Health check endpoint"""
    runtime = request.app.state.runtime
    db_ok = True
    db_error = None
    queue_depth = 0
    db = runtime.database.session()
    try:
        db.execute(text("SELECT 1"))
        queue_depth = runtime.worker.queue_depth(db)
    except Exception as exc:
        db_ok = False
        db_error = str(exc)
    finally:
        db.close()

    QUEUE_DEPTH_GAUGE.set(queue_depth)
    worker_status = runtime.worker.status()
    WORKER_UP_GAUGE.set(1 if worker_status["running"] else 0)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
        "readiness": {
            "database": {"ok": db_ok, "error": db_error},
            "worker": worker_status,
            "leaderboard": {
                "running": runtime.leaderboard.is_running(),
                "pending_events": runtime.leaderboard.pending_events(),
            },
            "queue_depth": queue_depth,
        },
    }


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled"
    }


# Include routers
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(submissions.router, prefix="/api/v1/submissions", tags=["Submissions"])
app.include_router(contests.router, prefix="/api/v1/contests", tags=["Contests"])
app.include_router(problems.router, prefix="/api/v1/problems", tags=["Problems"])
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "codearena.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        # Grading, leaderboard and rate limiter state are per process.
        workers=1
    )
