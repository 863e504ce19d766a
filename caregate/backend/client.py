"""
Client for the hosted backend's edge functions and database RPC endpoints.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import logging
import time

import httpx

from ..errors import BackendError

logger = logging.getLogger(__name__)


class BackendClient:
    """Calls edge functions (``/functions/v1``) and RPCs (``/rest/v1/rpc``)."""

    def __init__(
        self,
        base_url: str,
        service_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._service_key:
            headers["Authorization"] = f"Bearer {self._service_key}"
            headers["apikey"] = self._service_key
        return headers

    async def start(self) -> None:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                transport=self._transport,
            )
            logger.info("Backend client started for %s", self.base_url)

    async def stop(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.info("Backend client stopped")

    async def _post(self, path: str, payload: Optional[Dict[str, Any]]) -> Any:
        if self._http_client is None:
            await self.start()
        assert self._http_client is not None
        start_time = time.time()
        try:
            response = await self._http_client.post(path, json=payload or {})
        except httpx.HTTPError as e:
            logger.error("Backend call %s failed: %s", path, e)
            raise BackendError(f"Backend call {path} failed: {e}") from e
        elapsed_ms = int((time.time() - start_time) * 1000)

        if response.status_code >= 400:
            try:
                body: Any = response.json()
            except ValueError:
                body = response.text
            logger.warning(
                "Backend call %s returned %s in %dms",
                path,
                response.status_code,
                elapsed_ms,
            )
            raise BackendError(
                f"Backend call {path} returned {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        logger.debug("Backend call %s ok in %dms", path, elapsed_ms)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def invoke_function(
        self, name: str, payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Invoke an edge function such as ``manage-user-profiles``."""
        return await self._post(f"/functions/v1/{name}", payload)

    async def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a database function such as ``execute_comprehensive_test_suite``."""
        return await self._post(f"/rest/v1/rpc/{function}", params)
