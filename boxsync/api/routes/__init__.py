"""
API routes module.
"""

from boxsync.api.routes.accounts import router as accounts_router
from boxsync.api.routes.auth import router as auth_router
from boxsync.api.routes.health import router as health_router
from boxsync.api.routes.jobs import router as jobs_router
from boxsync.api.routes.sync import router as sync_router

__all__ = ["accounts_router", "auth_router", "health_router", "jobs_router", "sync_router"]
