"""Route modules for the Ferret Bot diagnostics server.

Each module exports an APIRouter instance that gets included in the main
FastAPI app via app.include_router().
"""

from routes.catalog import catalog_router

__all__ = [
    "catalog_router",
]
