"""
Packet Module

Handles the packet-forwarder wire header: packet type and gateway ID
extraction.
"""

from .format import (
    PacketType,
    Header,
    HeaderError,
    MalformedHeaderError,
    UnsupportedVersionError,
    UnknownPacketTypeError,
    TruncatedGatewayIDError,
    decode_header,
    get_packet_type,
    get_gateway_id,
    PREFIX_SIZE,
)

__all__ = [
    'PacketType',
    'Header',
    'HeaderError',
    'MalformedHeaderError',
    'UnsupportedVersionError',
    'UnknownPacketTypeError',
    'TruncatedGatewayIDError',
    'decode_header',
    'get_packet_type',
    'get_gateway_id',
    'PREFIX_SIZE',
]
