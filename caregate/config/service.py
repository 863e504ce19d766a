"""
Configuration service with layered defaults and encryption support.

Values resolve in this order: runtime overrides set through the service,
environment variables, the JSON defaults file, then built-in defaults.
Sensitive values are kept Fernet-encrypted in memory when an encryption
key is configured.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from dataclasses import dataclass
import os
import json
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


BUILTIN_DEFAULTS: Dict[str, Any] = {
    "auth.jwt_secret": "change-this-secret",
    "database.url": None,
    "backend.url": None,
    "backend.service_key": None,
    "search.default_limit": 50,
    "search.autodetect_enabled": True,
    "search.autodetect_delay_seconds": 3.0,
    "routing.render_timeout_seconds": 10.0,
}

ENV_OVERRIDES: Dict[str, str] = {
    "auth.jwt_secret": "JWT_SECRET",
    "database.url": "DATABASE_URL",
    "backend.url": "BACKEND_URL",
    "backend.service_key": "BACKEND_SERVICE_KEY",
    "search.default_limit": "SEARCH_DEFAULT_LIMIT",
    "search.autodetect_enabled": "SEARCH_AUTODETECT",
    "search.autodetect_delay_seconds": "SEARCH_AUTODETECT_DELAY",
    "routing.render_timeout_seconds": "ROUTE_RENDER_TIMEOUT",
}

SENSITIVE_KEYS = {"auth.jwt_secret", "backend.service_key"}


@dataclass
class ConfigItem:
    key: str
    value: Any
    is_sensitive: bool = False
    updated_by: Optional[str] = None
    reason: Optional[str] = None


def _coerce(raw: str, like: Any) -> Any:
    if isinstance(like, bool):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(like, int):
        return int(raw)
    if isinstance(like, float):
        return float(raw)
    return raw


class ConfigService:
    def __init__(
        self,
        encryption_key: Optional[str] = None,
        defaults_file: Optional[str] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        self._store: Dict[str, ConfigItem] = {}
        self._cipher: Optional[Fernet] = (
            Fernet(encryption_key.encode()) if encryption_key else None
        )
        self._environ = environ if environ is not None else os.environ
        self.defaults: Dict[str, Any] = dict(BUILTIN_DEFAULTS)
        self._load_defaults(
            defaults_file or os.getenv("CONFIG_DEFAULTS_FILE", "config.defaults.json")
        )

    def _load_defaults(self, defaults_file: str) -> None:
        try:
            if os.path.exists(defaults_file):
                with open(defaults_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    self.defaults.update(data)
        except (OSError, ValueError) as e:
            logger.warning("Failed to load defaults: %s", e)

    def _protect(self, value: Any, is_sensitive: bool) -> Any:
        if not is_sensitive or not self._cipher:
            return value
        data = json.dumps(value).encode("utf-8")
        return self._cipher.encrypt(data).decode("utf-8")

    def _unprotect(self, value: Any, is_sensitive: bool) -> Any:
        if not is_sensitive or not self._cipher:
            return value
        try:
            raw = self._cipher.decrypt(str(value).encode("utf-8"))
            return json.loads(raw.decode("utf-8"))
        except InvalidToken:
            return {"error": "decryption_failed"}

    def setting(self, key: str, default: Any = None) -> Any:
        """Synchronous lookup used while wiring the application."""
        item = self._store.get(key)
        if item is not None:
            return self._unprotect(item.value, item.is_sensitive)
        base = self.defaults.get(key, default)
        env_name = ENV_OVERRIDES.get(key)
        if env_name and self._environ.get(env_name) not in (None, ""):
            raw = self._environ[env_name]
            try:
                return _coerce(raw, base)
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", env_name, raw)
        return base

    async def set(
        self,
        key: str,
        value: Any,
        *,
        is_sensitive: Optional[bool] = None,
        updated_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        sensitive = key in SENSITIVE_KEYS if is_sensitive is None else is_sensitive
        self._store[key] = ConfigItem(
            key=key,
            value=self._protect(value, sensitive),
            is_sensitive=sensitive,
            updated_by=updated_by,
            reason=reason,
        )
        logger.info(
            "config_set key=%s sensitive=%s by=%s reason=%s",
            key,
            sensitive,
            updated_by,
            reason,
        )

    async def get(self, key: str, reveal: bool = True) -> Optional[Any]:
        item = self._store.get(key)
        if item is not None:
            if not reveal and item.is_sensitive:
                return "***"
            return self._unprotect(item.value, item.is_sensitive)
        value = self.setting(key)
        if not reveal and key in SENSITIVE_KEYS and value is not None:
            return "***"
        return value

    async def get_all(self, reveal: bool = True) -> Dict[str, Any]:
        keys = set(self.defaults) | set(self._store)
        result: Dict[str, Any] = {}
        for k in sorted(keys):
            result[k] = await self.get(k, reveal=reveal)
        return result


_CONFIG_SERVICE: Optional[ConfigService] = None


def get_config_service() -> ConfigService:
    """Get or create the process-wide ConfigService used by the default app."""
    global _CONFIG_SERVICE
    if _CONFIG_SERVICE is None:
        _CONFIG_SERVICE = ConfigService(encryption_key=os.getenv("CONFIG_ENC_KEY"))
    return _CONFIG_SERVICE
