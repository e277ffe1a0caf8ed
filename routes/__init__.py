"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.pricing_uploads import router as pricing_uploads_router
from routes.bulk_operations import router as bulk_operations_router

__all__ = [
    "pricing_uploads_router",
    "bulk_operations_router",
]
