"""
Packet-Forwarder Header Format

Decodes the fixed prefix of datagrams exchanged between LoRa gateways
running the Semtech packet-forwarder and a network server.

Header Format (4 or 12 bytes):
    version     (1 byte)  - Protocol version
    token       (2 bytes) - Random token (big-endian, opaque)
    type        (1 byte)  - Packet type
    gateway_id  (8 bytes) - Gateway EUI (PUSH_DATA, PULL_DATA, TX_ACK only)

Anything after the header (usually a JSON object) is carried as an
opaque payload and never parsed here.

All functions in this module are pure and safe to call from any thread.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .. import GATEWAY_ID_LENGTH, PROTOCOL_VERSION


# Version + token + type
PREFIX_SIZE = 4

# Prefix + gateway EUI
HEADER_WITH_GATEWAY_SIZE = PREFIX_SIZE + GATEWAY_ID_LENGTH


class HeaderError(ValueError):
    """Base class for header decode errors."""
    pass


class MalformedHeaderError(HeaderError):
    """Datagram is shorter than the fixed header prefix."""
    pass


class UnsupportedVersionError(HeaderError):
    """Protocol version byte is not supported."""
    pass


class UnknownPacketTypeError(HeaderError):
    """Packet type byte maps to no known packet type."""
    pass


class TruncatedGatewayIDError(HeaderError):
    """Packet type requires a gateway ID but the datagram ends early."""
    pass


class PacketType(IntEnum):
    """Packet-forwarder packet types."""
    # Uplink (gateway -> server)
    PUSH_DATA = 0x00      # Received RF packets and gateway stats
    PULL_DATA = 0x02      # Keep-alive, opens the downlink path
    TX_ACK = 0x05         # Downlink transmission feedback
    
    # Server -> gateway
    PUSH_ACK = 0x01       # Acknowledges PUSH_DATA
    PULL_RESP = 0x03      # Downlink packet to transmit
    PULL_ACK = 0x04       # Acknowledges PULL_DATA
    
    @property
    def has_gateway_id(self) -> bool:
        """Whether this packet type carries a gateway ID after the prefix."""
        return self in _GATEWAY_ID_TYPES


_GATEWAY_ID_TYPES = frozenset({
    PacketType.PUSH_DATA,
    PacketType.PULL_DATA,
    PacketType.TX_ACK,
})


@dataclass(frozen=True)
class Header:
    """
    Decoded packet-forwarder header.
    
    gateway_id is the 16-character lowercase hex form of the gateway EUI,
    or None for packet types that carry no EUI.
    """
    protocol_version: int
    token: int
    packet_type: PacketType
    gateway_id: Optional[str] = None
    
    @property
    def size(self) -> int:
        """Header size in bytes."""
        if self.gateway_id is None:
            return PREFIX_SIZE
        return HEADER_WITH_GATEWAY_SIZE


def decode_header(data: bytes) -> Header:
    """
    Decode the packet-forwarder header at the start of a datagram.
    
    Args:
        data: Raw datagram bytes
    
    Returns:
        Header: Fully validated header
    
    Raises:
        MalformedHeaderError: Fewer than 4 bytes
        UnsupportedVersionError: Version byte is not PROTOCOL_VERSION
        UnknownPacketTypeError: Type byte is not a known PacketType
        TruncatedGatewayIDError: Gateway ID required but incomplete
    """
    if len(data) < PREFIX_SIZE:
        raise MalformedHeaderError(
            f"Header too short: {len(data)} < {PREFIX_SIZE}"
        )
    
    version, token, type_byte = struct.unpack(">BHB", data[:PREFIX_SIZE])
    
    if version != PROTOCOL_VERSION:
        raise UnsupportedVersionError(f"Unsupported protocol version: {version}")
    
    try:
        packet_type = PacketType(type_byte)
    except ValueError:
        raise UnknownPacketTypeError(f"Unknown packet type: {type_byte:#04x}") from None
    
    gateway_id = None
    if packet_type.has_gateway_id:
        if len(data) < HEADER_WITH_GATEWAY_SIZE:
            raise TruncatedGatewayIDError(
                f"Gateway ID truncated: {len(data) - PREFIX_SIZE} < {GATEWAY_ID_LENGTH} bytes"
            )
        gateway_id = data[PREFIX_SIZE:HEADER_WITH_GATEWAY_SIZE].hex()
    
    return Header(
        protocol_version=version,
        token=token,
        packet_type=packet_type,
        gateway_id=gateway_id,
    )


def get_packet_type(data: bytes) -> PacketType:
    """Return the packet type of a datagram."""
    return decode_header(data).packet_type


def get_gateway_id(data: bytes) -> str:
    """
    Return the gateway ID of a datagram.
    
    Raises:
        HeaderError: If the header is invalid or the packet type
            carries no gateway ID
    """
    header = decode_header(data)
    if header.gateway_id is None:
        raise HeaderError(
            f"Gateway ID not available for packet type: {header.packet_type.name}"
        )
    return header.gateway_id
