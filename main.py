from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import os

from config.settings import settings
from db.session import create_tables
from api.views import router as views_router
from core.audit import start_view_audit_scheduler, shutdown_view_audit_scheduler
from core.errors import NotFoundError, StorageError, TransientError, ValidationError
from middleware.logging import LoggingMiddleware

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting Marketplace Views API...")

    create_tables()
    logger.info("Database tables created/verified")

    start_view_audit_scheduler()

    yield

    # Shutdown
    shutdown_view_audit_scheduler()
    logger.info("Shutting down Marketplace Views API...")

# Create FastAPI app
app = FastAPI(
    title="Marketplace Views API",
    description="Deduplicated view counting for marketplace shops and products",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)

def _error(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "data": None},
        headers=headers,
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    return _error(exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, str(exc))

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, f"{exc.entity_kind.capitalize()} not found")

@app.exception_handler(TransientError)
async def transient_error_handler(request: Request, exc: TransientError):
    logger.warning(f"Transient failure on {request.method} {request.url.path}: {exc}")
    return _error(503, "Service temporarily unavailable, please retry", headers={"Retry-After": "1"})

@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return _error(500, "Internal server error")

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error(500, "Internal server error")

# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "Marketplace Views API is running"}

# Include routers
app.include_router(views_router, prefix="/api")

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info"
    )
