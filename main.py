from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

import uvicorn
import logging
from datetime import datetime
import os

from config.settings import settings, LoggingConfig
from api.models.responses import HealthResponse
from core.errors import AnalysisError
from services.service_container import ServiceContainer

APP_VERSION = "1.0.0"

def setup_logging(config: LoggingConfig) -> None:
    """Configure root logging, optionally with a rotating log file"""
    handlers = [logging.StreamHandler()]

    if config.log_to_file:
        log_dir = os.path.dirname(config.log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(
            config.log_file_path,
            maxBytes=config.max_log_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding='utf-8'
        ))

    logging.basicConfig(level=config.level.value, format=config.format, handlers=handlers, force=True)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

# Configure logging
setup_logging(settings.logging)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the analysis services for the lifetime of the app"""
    # Startup
    logger.info("🚀 Transaction analysis API starting...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Chain catalog: {settings.chains.catalog_url}")

    async with ServiceContainer(settings) as services:
        app.state.services = services
        yield
        # Shutdown
        logger.info("🛑 Transaction analysis API shutting down...")
        app.state.services = None

app = FastAPI(
    title="Transaction Analysis API",
    description="Decodes EVM transactions into transfers, interactions and risk signals",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"] if settings.environment == 'development' else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check with service initialization state"""
    services = getattr(request.app.state, "services", None)
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": APP_VERSION,
        "environment": settings.environment,
        "services_initialized": bool(services and services.analyzer)
    }

from api.dependencies import analysis_error_handler
from api.routes.analysis import router as analysis_router
from api.routes.status import router as status_router

# Include routers
app.include_router(analysis_router, prefix="/api")
app.include_router(status_router, prefix="/api")

app.add_exception_handler(AnalysisError, analysis_error_handler)

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Global exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "category": "internal_error",
                "message": str(exc) if settings.environment == 'development' else "An error occurred",
                "details": {}
            },
            "timestamp": datetime.now().isoformat()
        }
    )


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv('PORT', 8001)),
        reload=settings.environment == 'development',
        log_level=settings.logging.level.value.lower()
    )
