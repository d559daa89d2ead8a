"""Job definitions.

Types:
- JobSpec: Recurrence, timezone, metadata and exactly one action
- HttpAction / BrokerAction: Action variants
- Job: Persisted record of a job id and its spec
"""

from cadence.jobs.types import Action, BrokerAction, HttpAction, Job, JobSpec

__all__ = [
    "Action",
    "BrokerAction",
    "HttpAction",
    "Job",
    "JobSpec",
]
