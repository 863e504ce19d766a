"""
Module registry: the console modules and the tables that back them.

The registry reads active rows of the ``modules`` table. Modules can also be
declared in memory, which is how the default app and tests seed it without
a database round trip. A module's ``route`` is the console page that owns
its table; whoever may open that page may search the table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .models import Module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleInfo:
    name: str
    table_name: str
    description: Optional[str] = None
    route: Optional[str] = None


DEFAULT_MODULES = [
    ModuleInfo("User Management", "profiles", "Staff and patient accounts", "/users"),
    ModuleInfo("Facilities", "facilities", "Treatment centers and clinics", "/facilities"),
    ModuleInfo("Modules", "modules", "Console module catalogue", "/modules"),
    ModuleInfo("Roles", "roles", "Healthcare roles", "/role-management"),
    ModuleInfo("Permissions", "permissions", "Role permissions", "/role-management"),
    ModuleInfo(
        "API Services", "api_integration_registry", "Internal API registry", "/api-services"
    ),
    ModuleInfo(
        "External APIs", "external_api_registry", "Published external APIs", "/api-services"
    ),
    ModuleInfo("Testing", "comprehensive_test_cases", "Test case catalogue", "/testing"),
]


class ModuleRegistry:
    def __init__(
        self,
        session_factory: Optional[Callable[[], Any]] = None,
        modules: Optional[Iterable[ModuleInfo]] = None,
    ):
        self._session_factory = session_factory
        self._declared: List[ModuleInfo] = list(modules or [])

    def declare(self, module: ModuleInfo) -> None:
        self._declared = [m for m in self._declared if m.name != module.name]
        self._declared.append(module)

    async def _database_modules(self) -> List[ModuleInfo]:
        if self._session_factory is None:
            return []
        try:
            async with self._session_factory() as session:
                rows = await session.scalars(
                    select(Module).where(Module.is_active.is_(True)).order_by(Module.name)
                )
                return [
                    ModuleInfo(
                        name=row.name,
                        table_name=row.table_name,
                        description=row.description,
                        route=row.route_path,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            logger.warning("Module table unavailable, using declared modules: %s", e)
            return []

    async def list_modules(self) -> List[ModuleInfo]:
        """Declared modules followed by active database modules, unique by name."""
        found: List[ModuleInfo] = list(self._declared) + await self._database_modules()
        seen = set()
        unique: List[ModuleInfo] = []
        for module in found:
            if module.name in seen:
                continue
            seen.add(module.name)
            unique.append(module)
        logger.debug("module registry listed %d modules", len(unique))
        return unique

    async def get_module(self, table_name: str) -> Optional[ModuleInfo]:
        """The first listed module backed by ``table_name``."""
        for module in await self.list_modules():
            if module.table_name == table_name:
                return module
        return None
