# app/routers/health.py

from fastapi import APIRouter

from app.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "payer-reconciliation-api",
    }


@router.get("/ready")
async def readiness_check():
    """Readiness check - reports whether a database is configured."""
    settings = get_settings()
    database = "configured" if settings.supabase_url else "not_configured"
    return {
        "status": "ready" if settings.supabase_url else "degraded",
        "checks": {
            "database": database,
        },
    }
