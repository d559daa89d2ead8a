"""Scheduling subsystem.

Public API:
- Registry: Armed jobs keyed by (tenant, job id), kept consistent with the store
- CronTrigger: Per-job background task firing on each occurrence

Types:
- Recurrence: Parsed cron expression bound to a timezone
- ScheduledJob: Immutable descriptor passed to the fire callback
"""

from cadence.scheduling.recurrence import Recurrence, parse_recurrence
from cadence.scheduling.registry import Registry
from cadence.scheduling.trigger import CronTrigger, ScheduledJob

__all__ = [
    "CronTrigger",
    "Recurrence",
    "Registry",
    "ScheduledJob",
    "parse_recurrence",
]
