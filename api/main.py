"""
Order Core API - Main Application.

FastAPI application with CORS enabled for the back-office dashboard.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import __version__
from services.settings import load_settings

logging.basicConfig(
    level=load_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Order Core API",
    description="Order ingestion and fulfillment for the dropship back office",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Unexpected failures (including unresolvable dependencies) still answer in JSON."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": f"Internal server error: {exc}"})


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status and version.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "order-core-api"
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Order Core API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import orders, webhooks

app.include_router(orders.router, prefix="/api/v1", tags=["Orders"])
app.include_router(webhooks.router, prefix="/api/v1", tags=["Webhooks"])


def run() -> None:
    """Serve the API with uvicorn (`order-core-api` console script)."""
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=8000)
