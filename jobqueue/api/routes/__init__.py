"""
API routes module.
"""

from jobqueue.api.routes.admin import router as admin_router
from jobqueue.api.routes.health import router as health_router
from jobqueue.api.routes.jobs import router as jobs_router

__all__ = ["jobs_router", "admin_router", "health_router"]
