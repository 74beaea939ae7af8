"""
Sink Module

Persistence sinks for raw packet records:
- DynamoDB   : Remote TTL store (14-day expiry)
- SQLite     : Local TTL store with the same key layout
- Log file   : Append-only log partitioned by date

Sinks are combined into a SinkChain that runs them in a fixed order.
"""

from .base import (
    Sink,
    SinkError,
    PacketRecord,
)

from .chain import (
    SinkChain,
    SinkPolicy,
    ChainResult,
)

from .logfile import DailyLogSink
from .sqlite import SQLiteStoreSink

# DynamoDBSink is imported from .dynamodb directly so that boto3 is only
# loaded by deployments that use it.

__all__ = [
    'Sink',
    'SinkError',
    'PacketRecord',
    'SinkChain',
    'SinkPolicy',
    'ChainResult',
    'DailyLogSink',
    'SQLiteStoreSink',
]
