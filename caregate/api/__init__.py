from .admin import admin_router
from .auth import auth_router
from .navigation import navigation_router
from .operations import operations_router
from .search import search_router

__all__ = [
    "admin_router",
    "auth_router",
    "navigation_router",
    "operations_router",
    "search_router",
]
