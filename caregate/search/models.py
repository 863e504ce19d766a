"""
Search data models.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class FilterOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    IS = "is"
    NOT_IS = "not.is"


class LogicalOperator(str, Enum):
    AND = "and"
    OR = "or"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchFilter(BaseModel):
    """One ``field <operator> value`` condition.

    ``logical_operator`` joins this condition to everything before it in the
    filter list: ``[a, b(or), c]`` means ``(a OR b) AND c``.
    """

    model_config = ConfigDict(populate_by_name=True)

    field: str
    operator: FilterOperator = FilterOperator.EQ
    value: Any = None
    logical_operator: LogicalOperator = Field(
        default=LogicalOperator.AND, alias="logicalOperator"
    )


class FilterGroup(BaseModel):
    """A node of an explicit boolean expression over filters."""

    model_config = ConfigDict(populate_by_name=True)

    logical_operator: LogicalOperator = Field(
        default=LogicalOperator.AND, alias="logicalOperator"
    )
    conditions: List[Union[SearchFilter, "FilterGroup"]] = Field(default_factory=list)


FilterGroup.model_rebuild()


class SearchConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    table_name: str
    searchable_fields: List[str] = Field(default_factory=list)
    filters: List[SearchFilter] = Field(default_factory=list)
    where: Optional[FilterGroup] = None
    sort_by: Optional[str] = None
    sort_order: SortOrder = SortOrder.DESC
    limit: int = Field(default=50, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    full_text_search: bool = False


class SearchResult(BaseModel):
    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
    total_pages: int = 0
    current_page: int = 1
    has_more: bool = False
