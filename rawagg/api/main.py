"""
RawAgg FastAPI Application
==========================
Main entry point for the REST API.
"""

import logging
from datetime import datetime
from fastapi import FastAPI

from rawagg import __version__
from rawagg.api.routes import aggregations
from rawagg.api.schemas import HealthResponse
from rawagg.config import get_config


logging.basicConfig(
    level=get_config().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI app
app = FastAPI(
    title="RawAgg API",
    description="Cross-respondent aggregation of raw sensor data",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include routers
app.include_router(aggregations.router, prefix="/aggregations", tags=["Aggregations"])


@app.get("/", tags=["Health"])
async def root():
    """API root - redirects to docs."""
    return {
        "message": "RawAgg API",
        "docs": "/docs",
        "version": __version__
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(timestamp=datetime.utcnow(), version=__version__)


if __name__ == "__main__":
    import uvicorn
    config = get_config()
    uvicorn.run(app, host=config.api_host, port=config.api_port)
