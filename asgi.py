"""
asgi.py -- Application assembly for TenantGuard.

The ASGI entry point servers import. api/main.py owns the app; this module
only re-exports it so deployment config never has to name an internal path.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
