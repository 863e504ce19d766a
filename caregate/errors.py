"""
Exception hierarchy shared by the registry, search and backend layers.
"""

from __future__ import annotations

from typing import Optional


class CaregateError(Exception):
    """Base class for errors raised by caregate services."""


class RouteConfigurationError(CaregateError):
    """Raised at startup when a route is registered without path or component."""


class SearchError(CaregateError):
    """Base class for search failures."""


class UnknownTableError(SearchError):
    def __init__(self, table_name: str):
        super().__init__(f"Unknown table: {table_name}")
        self.table_name = table_name


class UnknownFieldError(SearchError):
    def __init__(self, table_name: str, field: str):
        super().__init__(f"Unknown field '{field}' on table '{table_name}'")
        self.table_name = table_name
        self.field = field


class SearchExecutionError(SearchError):
    """The backend rejected or failed a search query."""


class BackendError(CaregateError):
    """Non-success response from an edge function or RPC endpoint."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, body: object = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
