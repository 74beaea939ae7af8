"""
Gateway Module

Tracks packet-forwarder gateways by their EUI.
"""

from .registry import (
    Address,
    GatewayRegistry,
    GatewayNotFoundError,
    ReadWriteLock,
)

__all__ = [
    'Address',
    'GatewayRegistry',
    'GatewayNotFoundError',
    'ReadWriteLock',
]
