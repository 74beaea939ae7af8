"""
Sink Base Class

Defines the record written for each datagram and the interface all
persistence sinks implement.

Design Principles:
- Simple, blocking interface (called from per-datagram worker threads)
- One record per datagram, never updated after it is written
- Failures surface as SinkError; retrying is the caller's concern
"""

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Tuple

from .. import RECORD_TTL_DAYS


# Partition key prefix for raw packet records
RAW_PARTITION_PREFIX = "raw#"

# Sort key format (time of day, microsecond precision)
SORT_KEY_FORMAT = "%H:%M:%S.%f"


class SinkError(Exception):
    """Exception raised when a sink fails to persist a record."""
    pass


@dataclass(frozen=True)
class PacketRecord:
    """
    Persistence record for a single datagram.
    
    The receive timestamp is taken once and shared by every sink the
    record is written to.
    """
    # Canonical gateway ID (16 lowercase hex characters)
    gateway_id: str
    
    # Raw datagram, header included
    data: bytes
    
    # Receive time (timezone-aware, host local time)
    received_at: datetime = field(default_factory=lambda: datetime.now().astimezone())
    
    # Source address (host, port)
    addr: Optional[Tuple[str, int]] = None
    
    @property
    def data_base64(self) -> str:
        """Binary-safe form of the datagram."""
        return base64.b64encode(self.data).decode("ascii")
    
    @property
    def expires_at(self) -> datetime:
        """When TTL stores may drop the record."""
        return self.received_at + timedelta(days=RECORD_TTL_DAYS)
    
    @property
    def expires(self) -> int:
        """Expiry as Unix seconds."""
        return int(self.expires_at.timestamp())
    
    @property
    def partition_key(self) -> str:
        """TTL store partition key: one partition per receive date."""
        return RAW_PARTITION_PREFIX + self.received_at.strftime("%Y-%m-%d")
    
    @property
    def sort_key(self) -> str:
        """TTL store sort key: receive time of day."""
        return self.received_at.strftime(SORT_KEY_FORMAT)


class Sink(ABC):
    """
    Abstract base class for persistence sinks.
    
    Usage:
        sink = ConcreteSink(...)
        sink.write(record)
        sink.close()
    """
    
    name = "sink"
    
    @abstractmethod
    def write(self, record: PacketRecord) -> None:
        """
        Persist a record.
        
        Must be safe to call from several threads at once.
        
        Raises:
            SinkError: If the record could not be persisted
        """
        pass
    
    def close(self) -> None:
        """Release the sink's underlying resource."""
        pass
    
    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"
