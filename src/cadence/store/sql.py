"""SQLAlchemy-backed job store with one database per tenant.

Each tenant gets its own database, addressed by formatting the configured
URL template with ``data_dir``, ``tenant`` and ``database``. With the default
SQLite template, tenant ``acme`` lives in ``<data_dir>/cron_acme.db`` and
dropping the namespace removes that file.
"""

import asyncio
import logging
import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cadence.config.models import DEFAULT_URL_TEMPLATE, StoreConfig
from cadence.config.paths import get_data_path
from cadence.errors import (
    InvalidTenantError,
    JobExistsError,
    JobNotFoundError,
    NamespaceNotFoundError,
    StoreError,
)
from cadence.jobs.types import Job
from cadence.store.models import Base, JobRecord, utc_now

logger = logging.getLogger(__name__)

# Tenants become database names and file names
TENANT_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,62}$")


def validate_tenant(tenant: str) -> str:
    if not isinstance(tenant, str) or not TENANT_PATTERN.match(tenant):
        raise InvalidTenantError(f"Invalid tenant identifier: {tenant!r}")
    return tenant


@dataclass
class _Namespace:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    path: Path | None


class SqlJobStore:
    """Job store keeping each tenant in its own database.

    Example:
        store = SqlJobStore(data_dir=Path("/var/lib/cadence"))
        await store.connect()
        await store.create_namespace("acme")
        await store.create("acme", job)
    """

    def __init__(
        self,
        url_template: str = DEFAULT_URL_TEMPLATE,
        data_dir: Path | None = None,
        database_prefix: str = "cron_",
    ):
        self._url_template = url_template
        self._data_dir = data_dir or get_data_path()
        self._database_prefix = database_prefix
        self._namespaces: dict[str, _Namespace] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: StoreConfig) -> "SqlJobStore":
        return cls(
            url_template=config.url_template,
            data_dir=config.data_dir,
            database_prefix=config.database_prefix,
        )

    @property
    def namespaces(self) -> set[str]:
        return set(self._namespaces)

    def database_url(self, tenant: str) -> str:
        return self._url_template.format(
            data_dir=self._data_dir,
            tenant=tenant,
            database=f"{self._database_prefix}{tenant}",
        )

    def _database_path(self, url: str) -> Path | None:
        parsed = make_url(url)
        if not parsed.drivername.startswith("sqlite"):
            return None
        if not parsed.database or parsed.database == ":memory:":
            return None
        return Path(parsed.database)

    async def connect(self) -> None:
        if not self._url_template.startswith("sqlite"):
            return
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create data directory {self._data_dir}: {e}") from e

    async def close(self) -> None:
        async with self._lock:
            namespaces = list(self._namespaces.values())
            self._namespaces.clear()
        for namespace in namespaces:
            await namespace.engine.dispose()

    async def create_namespace(self, tenant: str) -> None:
        validate_tenant(tenant)
        async with self._lock:
            if tenant in self._namespaces:
                return

            url = self.database_url(tenant)
            path = self._database_path(url)
            engine = create_async_engine(url, echo=False, pool_pre_ping=True)
            try:
                if path is not None:
                    path.parent.mkdir(parents=True, exist_ok=True)
                async with engine.begin() as conn:
                    await conn.run_sync(Base.metadata.create_all)
            except (SQLAlchemyError, OSError) as e:
                await engine.dispose()
                raise StoreError(
                    f"Cannot create namespace for tenant {tenant}: {e}"
                ) from e

            self._namespaces[tenant] = _Namespace(
                engine=engine,
                session_factory=async_sessionmaker(
                    engine, class_=AsyncSession, expire_on_commit=False
                ),
                path=path,
            )
        logger.info("namespace_created", extra={"tenant": tenant})

    async def drop_namespace(self, tenant: str) -> None:
        validate_tenant(tenant)
        async with self._lock:
            namespace = self._namespaces.pop(tenant, None)
        if namespace is None:
            raise NamespaceNotFoundError(tenant)

        try:
            async with namespace.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot drop namespace for tenant {tenant}: {e}") from e
        finally:
            await namespace.engine.dispose()

        if namespace.path is not None:
            try:
                namespace.path.unlink(missing_ok=True)
            except OSError as e:
                raise StoreError(
                    f"Cannot remove database file {namespace.path}: {e}"
                ) from e
        logger.info("namespace_dropped", extra={"tenant": tenant})

    def _namespace(self, tenant: str) -> _Namespace:
        validate_tenant(tenant)
        namespace = self._namespaces.get(tenant)
        if namespace is None:
            raise NamespaceNotFoundError(tenant)
        return namespace

    @asynccontextmanager
    async def _session(self, tenant: str) -> AsyncGenerator[AsyncSession, None]:
        namespace = self._namespace(tenant)
        async with namespace.session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise StoreError(f"Store operation failed for tenant {tenant}: {e}") from e
            except Exception:
                await session.rollback()
                raise

    async def create(self, tenant: str, job: Job) -> None:
        async with self._session(tenant) as session:
            session.add(JobRecord.from_job(job))
            try:
                await session.flush()
            except IntegrityError as e:
                raise JobExistsError(tenant, job.job_id) from e

    async def read(self, tenant: str, job_id: str) -> Job:
        async with self._session(tenant) as session:
            record = await session.get(JobRecord, job_id)
            if record is None:
                raise JobNotFoundError(tenant, job_id)
            return record.to_job()

    async def read_all(self, tenant: str) -> list[Job]:
        async with self._session(tenant) as session:
            result = await session.execute(
                select(JobRecord).order_by(JobRecord.created_at, JobRecord.job_id)
            )
            records = result.scalars().all()

        jobs: list[Job] = []
        for record in records:
            try:
                jobs.append(record.to_job())
            except ValidationError as e:
                logger.error(
                    "job_record_invalid",
                    extra={
                        "tenant": tenant,
                        "job.id": record.job_id,
                        "error.message": str(e),
                    },
                )
        return jobs

    async def update(self, tenant: str, job: Job) -> None:
        async with self._session(tenant) as session:
            record = await session.get(JobRecord, job.job_id)
            if record is None:
                raise JobNotFoundError(tenant, job.job_id)
            record.spec = job.spec.to_dict()
            record.updated_at = utc_now()

    async def delete(self, tenant: str, job_id: str) -> None:
        async with self._session(tenant) as session:
            result = await session.execute(
                delete(JobRecord).where(JobRecord.job_id == job_id)
            )
            if result.rowcount == 0:
                raise JobNotFoundError(tenant, job_id)
