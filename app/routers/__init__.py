# app/routers/__init__.py

from app.routers import health
from app.routers import reconcile
from app.routers import aliases

__all__ = ["health", "reconcile", "aliases"]
