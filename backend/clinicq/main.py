"""
ClinicQ - clinic queue management service

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import QueueError
from .stores import get_store
from .routers import (
    public_router,
    queue_router,
    doctors_router
)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting %s v%s (%s storage)", settings.APP_NAME, settings.APP_VERSION, settings.STORAGE_BACKEND)
    await get_store().connect()

    yield

    # Shutdown
    await get_store().disconnect()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"]
)


@app.exception_handler(QueueError)
async def queue_error_handler(request: Request, exc: QueueError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    response = JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
    # Force CORS headers
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    response = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers
    )
    # Force CORS headers
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


# Global error handler with CORS headers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)

    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )
    # Force CORS headers
    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "*"
    response.headers["Access-Control-Allow-Headers"] = "*"
    return response


# Include routers
app.include_router(public_router)
app.include_router(queue_router)
app.include_router(doctors_router)


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - health check."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "storage": settings.STORAGE_BACKEND,
        "version": settings.APP_VERSION
    }


# Entry point for running directly
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinicq.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
