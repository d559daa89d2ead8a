"""SQLAlchemy ORM models for per-tenant job databases."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cadence.jobs.types import Job, JobSpec


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
    }


class JobRecord(Base):
    """One job of one tenant, keyed by job id."""

    __tablename__ = "jobs"

    job_id: Mapped[str] = mapped_column(String, primary_key=True)
    spec: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )

    @classmethod
    def from_job(cls, job: Job) -> "JobRecord":
        return cls(job_id=job.job_id, spec=job.spec.to_dict())

    def to_job(self) -> Job:
        return Job(job_id=self.job_id, spec=JobSpec.model_validate(self.spec))
