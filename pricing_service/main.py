"""
FastAPI application main module.
Wires the price recalculation engine into the process lifespan, plus
request logging, error envelopes and health checks.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid
import os
from contextlib import asynccontextmanager
from pricing_service.api.v1 import api_router
from pricing_service.config import PRICE_RECALCULATION_SETTINGS
from pricing_service.database import Base, engine
from pricing_service.jobs.supervisor import RecalculationSupervisor
from pricing_service.services import price_recalculation
from pricing_service.utils import setup_logging, get_logger

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/app.log"),
    enable_console=True
)

logger = get_logger(__name__)

SERVICE_NAME = "pricing-service"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Creates tables, recovers orphaned jobs and owns the recalculation supervisor.
    """
    logger.info("Application startup initiated")
    supervisor: RecalculationSupervisor | None = None
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")

        supervisor = RecalculationSupervisor()
        supervisor.recover_orphaned_jobs()
        # Endpoints read it from app.state; collaborator modules go through the gateway.
        app.state.recalculation_supervisor = supervisor  # type: ignore[attr-defined]
        price_recalculation.install_supervisor(supervisor)
        logger.info("Price recalculation supervisor started")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown initiated")
        if supervisor is not None:
            price_recalculation.install_supervisor(None)
            supervisor.shutdown(timeout=float(PRICE_RECALCULATION_SETTINGS["shutdown_timeout_seconds"]))
        logger.info("Application shutdown completed")


app = FastAPI(
    title="Pricing Service",
    description="""
    Catalog pricing back office.

    ## Price recalculation
    * Any pricing-input change triggers a full-catalog recalculation
    * At most one run is live; newer triggers cancel and restart it
    * Per-product failures are recorded without aborting the run

    ## Authentication
    Use Bearer token authentication with your API key:
    ```
    Authorization: Bearer <api_key>
    ```
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=exc.errors(),
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "details": exc.errors(),
            "request_id": request_id
        }
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        },
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )

@app.get("/health", tags=["health"], summary="Basic health check")
async def health_check():
    """Health check including the recalculation supervisor state."""
    supervisor = getattr(app.state, "recalculation_supervisor", None)  # type: ignore[attr-defined]
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "recalculation": supervisor.snapshot() if supervisor is not None else None,
    }

@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Pricing Service API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1"
    }

app.include_router(api_router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "pricing_service.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["pricing_service"],
        log_level="info",
        access_log=True
    )
