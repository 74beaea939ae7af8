import os
import sys
from datetime import datetime, timezone

import pytest

# Make sure the package is importable without installation
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from loralogger.sink.base import PacketRecord, Sink, SinkError


GATEWAY_EUI = bytes.fromhex("0102030405060708")
GATEWAY_ID = "0102030405060708"

# PUSH_DATA, protocol version 2, token 0x0001
PUSH_DATA = bytes([0x02, 0x00, 0x01, 0x00]) + GATEWAY_EUI + b'{"stat":{}}'


class RecordingSink(Sink):
    """Sink that remembers what it was given and can be told to fail."""

    def __init__(self, name, fail=False):
        self.name = name
        self.fail = fail
        self.records = []
        self.closed = False

    def write(self, record):
        if self.fail:
            raise SinkError(f"{self.name} unavailable")
        self.records.append(record)

    def close(self):
        self.closed = True


@pytest.fixture
def record():
    return PacketRecord(
        gateway_id=GATEWAY_ID,
        data=PUSH_DATA,
        received_at=datetime(2026, 3, 7, 13, 45, 12, 345678, tzinfo=timezone.utc),
        addr=("192.0.2.10", 1700),
    )
