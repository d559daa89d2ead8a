"""Keeps the registry's tenant set in line with tenant provisioning.

At startup every known tenant is loaded; afterwards CREATE and DELETE
events on the tenancy stream load and unload tenants live. Malformed or
incomplete events are logged and discarded, never raised into the stream.
"""

import asyncio
import json
import logging
from dataclasses import dataclass

from cadence.errors import CadenceError
from cadence.scheduling.registry import Registry
from cadence.tenancy.directory import TenantDirectory
from cadence.tenancy.events import EventStream

logger = logging.getLogger(__name__)

CREATE = "CREATE"
DELETE = "DELETE"


@dataclass(frozen=True)
class TenantEvent:
    type: str
    tenant: str | None


def parse_event(payload: str | bytes) -> TenantEvent:
    """Parse a tenancy event payload.

    Raises:
        ValueError: If the payload is not a JSON object.
    """
    data = json.loads(payload)
    if not isinstance(data, dict):
        raise ValueError("tenancy event must be a JSON object")
    tenant = data.get("tenant")
    return TenantEvent(
        type=str(data.get("type") or ""),
        tenant=tenant if isinstance(tenant, str) and tenant else None,
    )


class TenantReconciler:
    def __init__(
        self,
        registry: Registry,
        directory: TenantDirectory,
        stream: EventStream,
        pattern: str = "*dojot.tenancy",
        unload_on_delete: bool = True,
    ):
        self._registry = registry
        self._directory = directory
        self._stream = stream
        self._pattern = pattern
        self._unload_on_delete = unload_on_delete

    async def start(self) -> list[str]:
        """Load every known tenant, then subscribe to provisioning events.

        Failures loading an individual tenant are logged and do not stop the
        others.

        Returns:
            Tenants that loaded successfully.
        """
        tenants = await self._directory.list_tenants()
        loaded = await self.sync(tenants)
        await self._stream.subscribe(self._pattern, self.handle_event)
        return loaded

    async def sync(self, tenants: list[str]) -> list[str]:
        results = await asyncio.gather(
            *(self._registry.load_tenant(tenant) for tenant in tenants),
            return_exceptions=True,
        )
        loaded: list[str] = []
        for tenant, result in zip(tenants, results, strict=True):
            if isinstance(result, Exception):
                logger.error(
                    "tenant_load_failed",
                    extra={"tenant": tenant, "error.message": str(result)},
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                loaded.append(tenant)
        logger.info(
            "tenants_synced",
            extra={"tenant.count": len(loaded), "tenant.failed": len(tenants) - len(loaded)},
        )
        return loaded

    async def handle_event(self, payload: str | bytes) -> None:
        logger.debug("tenant_event_received", extra={"event.payload": payload})
        try:
            event = parse_event(payload)
        except ValueError as e:
            logger.error(
                "tenant_event_malformed",
                extra={"event.payload": payload, "error.message": str(e)},
            )
            return

        if event.type not in (CREATE, DELETE):
            logger.debug("tenant_event_discarded", extra={"event.payload": payload})
            return

        if event.tenant is None:
            logger.warning(
                "tenant_event_missing_tenant",
                extra={"event.type": event.type, "event.payload": payload},
            )
            return

        try:
            if event.type == CREATE:
                await self._registry.load_tenant(event.tenant)
            elif self._unload_on_delete:
                await self._registry.unload_tenant(event.tenant)
            else:
                logger.debug(
                    "tenant_unload_disabled", extra={"tenant": event.tenant}
                )
        except CadenceError as e:
            logger.error(
                "tenant_event_failed",
                extra={
                    "tenant": event.tenant,
                    "event.type": event.type,
                    "error.message": str(e),
                },
            )
