"""Action executor contract and dispatch by action variant."""

from typing import Any, Protocol

from cadence.errors import InternalError
from cadence.jobs.types import BrokerAction, HttpAction, JobSpec


class ActionExecutor(Protocol):
    async def send(self, tenant: str, action: Any) -> Any:
        """Perform the action on behalf of ``tenant``.

        Raises:
            ExecutionFailure: The action failed its criterion or transport.
        """
        ...


class ActionDispatcher:
    """Routes a job's action to the executor for its variant."""

    def __init__(self, http: ActionExecutor, broker: ActionExecutor):
        self._http = http
        self._broker = broker

    async def execute(self, tenant: str, spec: JobSpec) -> Any:
        action = spec.action
        if isinstance(action, HttpAction):
            return await self._http.send(tenant, action)
        if isinstance(action, BrokerAction):
            return await self._broker.send(tenant, action)
        raise InternalError(f"Unsupported action type {type(action).__name__}")
