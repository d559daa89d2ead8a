"""Tenant provisioning.

Public API:
- TenantReconciler: Loads known tenants and follows provisioning events
- HttpTenantDirectory / StaticTenantDirectory: Startup tenant snapshot
- RedisEventStream: Pattern subscription on the tenancy channel
"""

from cadence.tenancy.directory import (
    HttpTenantDirectory,
    StaticTenantDirectory,
    TenantDirectory,
)
from cadence.tenancy.events import EventStream, RedisEventStream
from cadence.tenancy.reconciler import TenantEvent, TenantReconciler, parse_event

__all__ = [
    "EventStream",
    "HttpTenantDirectory",
    "RedisEventStream",
    "StaticTenantDirectory",
    "TenantDirectory",
    "TenantEvent",
    "TenantReconciler",
    "parse_event",
]
