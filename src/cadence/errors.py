"""Error taxonomy shared by the store, registry and executors.

API-facing mapping:
- NotFoundError: 404
- JobExistsError: 409
- InvalidSpecError / InvalidTenantError: 400
- StoreError / InternalError / BulkDeleteError: 500

ExecutionFailure never crosses the trigger boundary; it is logged only.
FatalInitError is raised by engine startup and terminates the process.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cadence.jobs.types import Job


class CadenceError(Exception):
    """Base class for engine errors."""


class NotFoundError(CadenceError):
    """A job or tenant namespace is absent."""


class JobNotFoundError(NotFoundError):
    def __init__(self, tenant: str, job_id: str) -> None:
        super().__init__(f"Not found job {job_id} for tenant {tenant}")
        self.tenant = tenant
        self.job_id = job_id


class NamespaceNotFoundError(NotFoundError):
    def __init__(self, tenant: str) -> None:
        super().__init__(f"Not found namespace for tenant {tenant}")
        self.tenant = tenant


class JobExistsError(CadenceError):
    def __init__(self, tenant: str, job_id: str) -> None:
        super().__init__(f"Job {job_id} already exists for tenant {tenant}")
        self.tenant = tenant
        self.job_id = job_id


class InvalidSpecError(CadenceError):
    """Recurrence expression, timezone or action cannot be used.

    Attributes:
        field: Spec field at fault ("time", "timezone", "http.url", ...).
        errors: Coded error entries for API responses.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.errors = errors or []


class InvalidTenantError(CadenceError):
    """Tenant identifier cannot be used as a namespace name."""


class StoreError(CadenceError):
    """Persistence layer unreachable or failing."""


class ExecutionFailure(CadenceError):
    """An action failed its success criterion or its transport failed."""


class InternalError(CadenceError):
    """Unexpected engine state, e.g. an unknown HTTP success criterion."""


class FatalInitError(CadenceError):
    """The engine cannot establish its infrastructure at startup."""


class BulkDeleteError(CadenceError):
    """Some deletions of a bulk delete failed.

    Attributes:
        deleted: Jobs that were removed.
        errors: Map of job id to the error that prevented its removal.
    """

    def __init__(
        self, tenant: str, deleted: list[Job], errors: dict[str, Exception]
    ) -> None:
        super().__init__(
            f"Failed to delete {len(errors)} of {len(deleted) + len(errors)} "
            f"jobs for tenant {tenant}"
        )
        self.tenant = tenant
        self.deleted = deleted
        self.errors = errors
