from __future__ import annotations

from typing import Dict, List, Optional
import logging

from .catalog import SchemaCatalog

logger = logging.getLogger(__name__)

KNOWN_SEARCH_FIELDS: Dict[str, List[str]] = {
    "profiles": ["first_name", "last_name", "email", "phone"],
    "users": ["email", "first_name", "last_name"],
    "patients": ["first_name", "last_name", "email", "phone", "medical_record_number"],
    "facilities": ["name", "address", "email", "phone"],
    "modules": ["name", "description"],
    "roles": ["name", "description"],
    "permissions": ["name", "description"],
}

DEFAULT_SEARCH_FIELDS = ["name", "description", "email"]


class SearchFieldDetector:
    """Works out which columns of a table are worth text-searching."""

    def __init__(self, catalog: Optional[SchemaCatalog] = None):
        self.catalog = catalog

    @staticmethod
    def detect_searchable_fields(table_name: str) -> List[str]:
        """Heuristic lookup by table name; unmapped tables get the generic default."""
        return list(KNOWN_SEARCH_FIELDS.get(table_name, DEFAULT_SEARCH_FIELDS))

    async def detect_from_catalog(self, table_name: str) -> List[str]:
        """Text columns of the live table.

        Known tables keep their curated field order, restricted to columns
        that actually exist. Raises UnknownTableError for tables the catalog
        cannot find. Without a catalog this degrades to the heuristic.
        """
        if self.catalog is None:
            return self.detect_searchable_fields(table_name)
        columns = await self.catalog.text_columns(table_name)
        curated = KNOWN_SEARCH_FIELDS.get(table_name)
        if curated:
            present = [c for c in curated if c in columns]
            if present:
                return present
            logger.warning(
                "None of the curated search fields exist on %s; using text columns",
                table_name,
            )
        return columns
