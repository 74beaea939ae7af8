"""
LoRa Logger - Packet-Forwarder UDP Collector

A passive collector that sits between LoRa packet-forwarder gateways
and a network server, recording every datagram it receives.

This package contains:
- packet/    : Packet-forwarder header decoding
- gateway/   : Gateway address registry
- sink/      : Persistence sinks (DynamoDB, SQLite, daily log files)
- collector  : UDP ingestion loop and lifecycle
- config     : TOML configuration
- main       : Command-line entry point
"""

__version__ = "0.1.0"
__author__ = "LoRa Logger Project"

# Core constants
PROTOCOL_VERSION = 2
GATEWAY_ID_LENGTH = 8  # bytes
MAX_DATAGRAM_SIZE = 65507  # bytes (UDP payload limit)
RECORD_TTL_DAYS = 14
