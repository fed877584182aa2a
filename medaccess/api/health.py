from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from medaccess.config import settings
from medaccess.database import get_db

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "service": "medaccess-api"}


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


@router.get("/health/db")
async def database_health(db: AsyncSession = Depends(get_db)):
    """Round-trip a trivial query to confirm the database is reachable."""
    await db.execute(text("SELECT 1"))
    return {"ok": True, "database": "reachable"}
