from __future__ import annotations

from typing import Dict, List, Optional
import asyncio
import logging

from ..errors import SearchError
from ..modules.registry import ModuleRegistry
from .detector import SearchFieldDetector
from .models import SearchConfig, SortOrder

logger = logging.getLogger(__name__)


class SearchConfigManager:
    """Owns one SearchConfig per table, seeded from the module registry."""

    def __init__(
        self,
        modules: ModuleRegistry,
        detector: Optional[SearchFieldDetector] = None,
        default_limit: int = 50,
    ):
        self.modules = modules
        self.detector = detector or SearchFieldDetector()
        self.default_limit = default_limit
        self._configs: Dict[str, SearchConfig] = {}
        self._task: Optional[asyncio.Task] = None

    def get_config(self, table_name: str) -> Optional[SearchConfig]:
        return self._configs.get(table_name)

    def set_config(self, config: SearchConfig) -> None:
        """Replace the whole config for its table."""
        self._configs[config.table_name] = config

    def list_configs(self) -> List[SearchConfig]:
        return list(self._configs.values())

    async def _default_config(self, table_name: str) -> SearchConfig:
        fields = await self.detector.detect_from_catalog(table_name)
        sort_by: Optional[str] = "created_at"
        catalog = self.detector.catalog
        if catalog is not None and not await catalog.has_column(table_name, "created_at"):
            sort_by = None
        return SearchConfig(
            table_name=table_name,
            searchable_fields=fields,
            sort_by=sort_by,
            sort_order=SortOrder.DESC,
            limit=self.default_limit,
            offset=0,
            full_text_search=True,
        )

    async def auto_detect_search_capabilities(self) -> int:
        """Build a default config for every module's table.

        Tables the catalog cannot find are skipped with a warning. Returns the
        number of configs stored.
        """
        stored = 0
        for module in await self.modules.list_modules():
            try:
                config = await self._default_config(module.table_name)
            except SearchError as e:
                logger.warning(
                    "Skipping search for module %s: %s", module.name, e
                )
                continue
            self._configs[module.table_name] = config
            stored += 1
        logger.info("Search capabilities detected for %d tables", stored)
        return stored

    def schedule_auto_detect(self, delay: float = 3.0) -> asyncio.Task:
        """Run auto-detection once, ``delay`` seconds from now, in the background."""

        async def _run() -> None:
            await asyncio.sleep(delay)
            try:
                await self.auto_detect_search_capabilities()
            except Exception:  # noqa: BLE001
                logger.exception("Search auto-detection failed")

        self._task = asyncio.get_running_loop().create_task(_run())
        return self._task

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
