"""
FastAPI application entry point.
"""

import logging
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.api.router import api_router
from app.models.category_rule import CategoryRule


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Personal finance backend that learns categorisation rules from user corrections",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/api/v1/health")
def health_check(db: Session = Depends(get_db)):
    """Health check. Reports rules still waiting for their corrections to be linked."""
    pending = db.query(CategoryRule).filter(CategoryRule.provenance_pending == True).count()
    return {
        "status": "ok",
        "app_name": settings.app_name,
        "rules_pending_provenance": pending,
    }
