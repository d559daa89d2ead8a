"""Sources for the startup snapshot of known tenants."""

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class TenantDirectory(Protocol):
    async def list_tenants(self) -> list[str]: ...


class StaticTenantDirectory:
    """Tenants listed in configuration."""

    def __init__(self, tenants: list[str] | None = None):
        self._tenants = list(tenants or [])

    async def list_tenants(self) -> list[str]:
        return list(self._tenants)


class HttpTenantDirectory:
    """Tenants fetched from a service returning ``{"tenants": [...]}``.

    Entries may be tenant ids or objects carrying an ``id``.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 12.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = url
        self._timeout = timeout
        self._client = client

    async def list_tenants(self) -> list[str]:
        """Fetch the tenant list.

        Raises:
            httpx.HTTPError: On transport errors or a non-2xx response.
            ValueError: If the response is not a tenant list.
        """
        if self._client is not None:
            response = await self._client.get(self._url, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(self._url)
        response.raise_for_status()

        data = response.json()
        entries = data.get("tenants") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ValueError(f"Unexpected tenant list from {self._url}")

        tenants = [tenant for entry in entries if (tenant := _tenant_id(entry))]
        logger.info(
            "tenants_fetched", extra={"http.url": self._url, "tenant.count": len(tenants)}
        )
        return tenants


def _tenant_id(entry: Any) -> str | None:
    if isinstance(entry, str):
        return entry or None
    if isinstance(entry, dict) and isinstance(entry.get("id"), str):
        return entry["id"] or None
    logger.warning("tenant_entry_ignored", extra={"tenant.entry": repr(entry)})
    return None
