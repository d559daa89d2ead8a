"""Job persistence.

Public API:
- JobStore: Per-tenant namespaced persistence contract
- SqlJobStore: SQLAlchemy implementation, one database per tenant
"""

from cadence.store.protocols import JobStore
from cadence.store.sql import SqlJobStore, validate_tenant

__all__ = [
    "JobStore",
    "SqlJobStore",
    "validate_tenant",
]
