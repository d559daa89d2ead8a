"""Persistence contract for job records.

A store keeps one isolated namespace per tenant. CRUD against a tenant whose
namespace was never created (or was dropped) raises NamespaceNotFoundError.
"""

from typing import Protocol

from cadence.jobs.types import Job


class JobStore(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def create_namespace(self, tenant: str) -> None:
        """Create the tenant namespace. Idempotent."""
        ...

    async def drop_namespace(self, tenant: str) -> None:
        """Remove the tenant namespace and every record in it.

        Raises:
            NamespaceNotFoundError: If the namespace does not exist.
        """
        ...

    async def create(self, tenant: str, job: Job) -> None:
        """Raises JobExistsError if the job id is taken."""
        ...

    async def read(self, tenant: str, job_id: str) -> Job:
        """Raises JobNotFoundError if absent."""
        ...

    async def read_all(self, tenant: str) -> list[Job]: ...

    async def update(self, tenant: str, job: Job) -> None:
        """Replace the spec of an existing job. Raises JobNotFoundError."""
        ...

    async def delete(self, tenant: str, job_id: str) -> None:
        """Raises JobNotFoundError if absent."""
        ...
