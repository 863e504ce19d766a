from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from ..search.models import FilterGroup, SearchFilter, SortOrder


class ConfigSetRequest(BaseModel):
    key: str = Field(..., max_length=255)
    value: Any
    is_sensitive: Optional[bool] = None
    reason: Optional[str] = None


class SearchRequest(BaseModel):
    """Body of ``POST /search/{table}``; unset fields come from the table's config."""

    term: Optional[str] = None
    match_all: bool = False
    searchable_fields: Optional[List[str]] = None
    filters: List[SearchFilter] = Field(default_factory=list)
    where: Optional[FilterGroup] = None
    sort_by: Optional[str] = None
    sort_order: Optional[SortOrder] = None
    limit: Optional[int] = Field(default=None, ge=1, le=1000)
    offset: Optional[int] = Field(default=None, ge=0)


class TokenRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    expires_minutes: int = Field(default=15, ge=1, le=1440)


class SuiteRunRequest(BaseModel):
    suite_type: Optional[str] = None
    batch_size: int = Field(default=50, ge=1, le=500)


class ProfileActionRequest(BaseModel):
    """Body forwarded to the ``manage-user-profiles`` edge function."""

    action: str = Field(..., min_length=1, max_length=64)
    data: Dict[str, Any] = Field(default_factory=dict)
