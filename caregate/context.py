"""
Application context: the services one app instance is wired with.

The route registry, search configs and audit buffer live on an
``AppContext`` built at startup and attached to ``app.state.context``.
Tests build their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional
import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from .audit.service import AuditService
from .backend.client import BackendClient
from .config.service import ConfigService, get_config_service
from .database import get_engine
from .identity.auth import AuthManager
from .modules.registry import DEFAULT_MODULES, ModuleInfo, ModuleRegistry
from .routing.defaults import initialize_routes
from .routing.registry import RouteRegistry
from .search.builder import SearchQueryBuilder
from .search.catalog import SchemaCatalog
from .search.detector import SearchFieldDetector
from .search.manager import SearchConfigManager

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    config: ConfigService
    routes: RouteRegistry
    auth: AuthManager
    audit: AuditService
    modules: ModuleRegistry
    search_manager: SearchConfigManager
    search: Optional[SearchQueryBuilder] = None
    backend: Optional[BackendClient] = None
    engine: Optional[AsyncEngine] = None
    sessions: Optional[async_sessionmaker] = None
    render_timeout: float = 10.0


def build_context(
    config: Optional[ConfigService] = None,
    routes: Optional[RouteRegistry] = None,
    engine: Optional[AsyncEngine] = None,
    modules: Optional[Iterable[ModuleInfo]] = None,
    backend: Optional[BackendClient] = None,
) -> AppContext:
    """Wire an AppContext from configuration.

    The database engine is only created when one is passed in or
    ``database.url`` is configured; without it search stays disabled.
    """
    config = config or get_config_service()

    if routes is None:
        routes = RouteRegistry()
        initialize_routes(routes)

    if engine is None and config.setting("database.url"):
        engine = get_engine(config.setting("database.url"))

    catalog = SchemaCatalog(engine) if engine is not None else None
    detector = SearchFieldDetector(catalog)
    session_factory = (
        async_sessionmaker(engine, expire_on_commit=False) if engine is not None else None
    )
    module_registry = ModuleRegistry(
        session_factory=session_factory,
        modules=DEFAULT_MODULES if modules is None else modules,
    )
    search_manager = SearchConfigManager(
        module_registry,
        detector=detector,
        default_limit=int(config.setting("search.default_limit", 50)),
    )
    search = (
        SearchQueryBuilder(engine, catalog=catalog, detector=detector)
        if engine is not None
        else None
    )

    if backend is None and config.setting("backend.url"):
        backend = BackendClient(
            config.setting("backend.url"), config.setting("backend.service_key")
        )

    if search is None:
        logger.info("No database configured; search endpoints disabled")

    return AppContext(
        config=config,
        routes=routes,
        auth=AuthManager(config.setting("auth.jwt_secret")),
        audit=AuditService(),
        modules=module_registry,
        search_manager=search_manager,
        search=search,
        backend=backend,
        engine=engine,
        sessions=session_factory,
        render_timeout=float(config.setting("routing.render_timeout_seconds", 10.0)),
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context
