"""
Gateway Registry

Remembers the last source address seen for each gateway so that a
downlink path can reach it later.

Features:
- Reader/writer locking (concurrent lookups, exclusive updates)
- Last-write-wins updates
- No eviction

Design:
- Entries live for the lifetime of the process
- The map is unbounded; gateway populations per deployment are small
- The same lock can be shared with an owner that needs to guard
  additional state (e.g. the collector's closed flag)
"""

import threading
from contextlib import contextmanager
from typing import Dict, Optional, Tuple


# Network address as returned by socket.recvfrom
Address = Tuple[str, int]


class GatewayNotFoundError(LookupError):
    """Raised when no address is known for a gateway."""
    pass


class ReadWriteLock:
    """
    Reader/writer lock.
    
    Any number of readers may hold the lock at once; a writer holds it
    alone. Waiting writers block new readers so updates are not starved.
    
    Usage:
        lock = ReadWriteLock()
        
        with lock.read():
            value = shared[key]
        
        with lock.write():
            shared[key] = value
    """
    
    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0
    
    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
    
    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()
    
    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
    
    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()
    
    @contextmanager
    def read(self):
        """Hold the lock shared for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()
    
    @contextmanager
    def write(self):
        """Hold the lock exclusively for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class GatewayRegistry:
    """
    Thread-safe gateway ID -> address mapping.
    
    Usage:
        registry = GatewayRegistry()
        registry.set_gateway("0102030405060708", ("10.0.0.5", 1700))
        
        addr = registry.get_gateway("0102030405060708")
    """
    
    def __init__(self, lock: Optional[ReadWriteLock] = None):
        """
        Initialize registry.
        
        Args:
            lock: Lock to guard the mapping with (default: a new one)
        """
        self._lock = lock or ReadWriteLock()
        self._gateways: Dict[str, Address] = {}
    
    @property
    def lock(self) -> ReadWriteLock:
        """The lock guarding the mapping."""
        return self._lock
    
    def set_gateway(self, gateway_id: str, addr: Address) -> None:
        """Record the latest address for a gateway, replacing any previous one."""
        with self._lock.write():
            self._gateways[gateway_id] = addr
    
    def get_gateway(self, gateway_id: str) -> Address:
        """
        Look up the last known address of a gateway.
        
        Raises:
            GatewayNotFoundError: If the gateway has never been seen
        """
        with self._lock.read():
            addr = self._gateways.get(gateway_id)
        if addr is None:
            raise GatewayNotFoundError(f"Gateway does not exist: {gateway_id}")
        return addr
    
    def snapshot(self) -> Dict[str, Address]:
        """Return a copy of the current mapping."""
        with self._lock.read():
            return dict(self._gateways)
    
    def __len__(self) -> int:
        with self._lock.read():
            return len(self._gateways)
    
    def __contains__(self, gateway_id: str) -> bool:
        with self._lock.read():
            return gateway_id in self._gateways
