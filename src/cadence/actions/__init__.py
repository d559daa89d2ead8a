"""Action execution.

Public API:
- ActionDispatcher: Routes a job's action to the matching executor
- HttpExecutor: Outbound HTTP calls judged by a success criterion
- BrokerExecutor: Publishes tenant-scoped messages on a MessageBus
- RedisMessageBus: Redis pub/sub MessageBus
"""

from cadence.actions.base import ActionDispatcher, ActionExecutor
from cadence.actions.broker import (
    BrokerExecutor,
    MessageBus,
    RedisMessageBus,
    format_message,
)
from cadence.actions.http import HttpExecutor, evaluate_criterion

__all__ = [
    "ActionDispatcher",
    "ActionExecutor",
    "BrokerExecutor",
    "HttpExecutor",
    "MessageBus",
    "RedisMessageBus",
    "evaluate_criterion",
    "format_message",
]
