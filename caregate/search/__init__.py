from .builder import SearchQueryBuilder
from .catalog import SchemaCatalog
from .detector import SearchFieldDetector
from .manager import SearchConfigManager
from .models import (
    FilterGroup,
    FilterOperator,
    LogicalOperator,
    SearchConfig,
    SearchFilter,
    SearchResult,
    SortOrder,
)

__all__ = [
    "SearchQueryBuilder",
    "SchemaCatalog",
    "SearchFieldDetector",
    "SearchConfigManager",
    "FilterGroup",
    "FilterOperator",
    "LogicalOperator",
    "SearchConfig",
    "SearchFilter",
    "SearchResult",
    "SortOrder",
]
