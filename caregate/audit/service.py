"""
Audit logging service.

Emits one structured JSON line per event and keeps a bounded in-memory
buffer for the admin audit listing. Event details are sanitized so patient
identifiers and contact data never reach the log.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import json
import logging

from .models import AuditCategory


class AuditLevel(str, Enum):
    MINIMAL = "minimal"
    STANDARD = "standard"
    DETAILED = "detailed"


logger = logging.getLogger(__name__)


class AuditService:
    SENSITIVE_KEYS = {
        "ssn",
        "dob",
        "date_of_birth",
        "phone",
        "phone_number",
        "email",
        "address",
        "mrn",
        "medical_record_number",
        "patient_id",
        "member_id",
        "diagnosis",
        "search_term",
    }

    def __init__(self, buffer_limit: int = 1000):
        self._events: List[Dict[str, Any]] = []
        self._buffer_limit = buffer_limit

    @classmethod
    def _sanitize(cls, data: Any) -> Any:
        """Recursively mask values under sensitive keys."""
        if isinstance(data, dict):
            out: Dict[str, Any] = {}
            for k, v in data.items():
                key_l = str(k).lower()
                if key_l in cls.SENSITIVE_KEYS or any(
                    t in key_l for t in ("email", "ssn", "phone", "patient")
                ):
                    out[k] = "[REDACTED]"
                else:
                    out[k] = cls._sanitize(v)
            return out
        if isinstance(data, (list, tuple)):
            return [cls._sanitize(x) for x in list(data)[:50]]
        if isinstance(data, (str, int, float, bool)) or data is None:
            return data
        return str(data)

    async def log_event(
        self,
        event_type: str,
        category: Any,
        action: str,
        result: str,
        description: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None,
        level: AuditLevel = AuditLevel.STANDARD,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        category_str = (
            category.value if isinstance(category, AuditCategory) else str(category)
        )
        payload = {
            "type": event_type,
            "category": category_str,
            "action": action,
            "result": result,
            "level": level.value,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "user_id": user_id,
            "description": description,
            "details": self._sanitize(details or {}),
            "ts": datetime.now(tz=timezone.utc).isoformat(),
        }
        logger.info("audit_event=%s", json.dumps(payload, separators=(",", ":")))
        self._events.append(payload)
        if len(self._events) > self._buffer_limit:
            del self._events[: len(self._events) - self._buffer_limit]

    async def list_events(self, limit: int = 100, offset: int = 0) -> dict:
        items = list(reversed(self._events))
        return {
            "items": items[offset : offset + limit],
            "total": len(self._events),
            "limit": limit,
            "offset": offset,
        }
