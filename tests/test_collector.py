"""Tests for the UDP collector."""

import errno
import logging
import socket
import threading
import time
from unittest import mock

import pytest

from loralogger.collector import Collector, CollectorError, build_sink_chain
from loralogger.config import LoggerConfig
from loralogger.gateway.registry import GatewayNotFoundError
from loralogger.packet.format import MalformedHeaderError
from loralogger.sink.base import Sink, SinkError
from loralogger.sink.chain import SinkChain, SinkPolicy
from loralogger.sink.logfile import DailyLogSink
from loralogger.sink.sqlite import SQLiteStoreSink

from conftest import GATEWAY_EUI, GATEWAY_ID, PUSH_DATA, RecordingSink


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


class FlakySocket:
    """Socket wrapper whose first reads fail with an I/O error."""

    def __init__(self, sock, failures=1):
        self._sock = sock
        self.failures = failures

    def recvfrom_into(self, buf):
        if self.failures:
            self.failures -= 1
            raise OSError(errno.EIO, "Input/output error")
        return self._sock.recvfrom_into(buf)

    def __getattr__(self, name):
        return getattr(self._sock, name)


class UnclosableSocket(FlakySocket):
    """Socket wrapper whose close() fails."""

    def __init__(self, sock):
        super().__init__(sock, failures=0)

    def close(self):
        raise OSError(errno.EIO, "Input/output error")


class BlockingSink(Sink):
    """Sink that holds every write until released."""

    name = "blocking"

    def __init__(self):
        self.release = threading.Event()
        self.entered = 0
        self._lock = threading.Lock()

    def write(self, record):
        with self._lock:
            self.entered += 1
        self.release.wait(timeout=10.0)


@pytest.fixture
def sinks():
    return RecordingSink("store"), RecordingSink("log")


@pytest.fixture
def collector(sinks):
    config = LoggerConfig(bind="127.0.0.1:0", store="none", log_path="")
    collector = Collector(config, chain=SinkChain(list(sinks)))
    yield collector
    collector.close()


@pytest.fixture
def sender():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()


class TestIngestion:

    def test_push_data_reaches_sinks(self, collector, sinks, sender):
        store, log = sinks

        sender.sendto(PUSH_DATA, collector.address)

        assert wait_for(lambda: len(log.records) == 1)
        record = store.records[0]
        assert record.gateway_id == GATEWAY_ID
        assert record.data == PUSH_DATA
        assert record.addr == sender.getsockname()
        assert log.records[0] is record

    def test_many_datagrams(self, collector, sinks, sender):
        store, log = sinks
        payloads = [PUSH_DATA + bytes([i]) for i in range(20)]

        for payload in payloads:
            sender.sendto(payload, collector.address)

        assert wait_for(lambda: len(log.records) == 20)
        assert sorted(r.data for r in store.records) == sorted(payloads)
        assert collector.wait_idle(timeout=5.0)
        assert collector.get_stats()["stored"] == 20

    def test_malformed_datagram_does_not_stop_loop(self, collector, sinks, sender):
        store, log = sinks

        sender.sendto(b"\x02\x00", collector.address)
        sender.sendto(PUSH_DATA, collector.address)

        assert wait_for(lambda: len(log.records) == 1)
        assert wait_for(lambda: collector.get_stats()["dropped"] == 1)

    def test_large_datagram_is_copied_whole(self, collector, sinks, sender):
        store, log = sinks
        payload = PUSH_DATA + b"x" * 8000

        sender.sendto(payload, collector.address)

        assert wait_for(lambda: len(log.records) == 1)
        assert log.records[0].data == payload

    def test_registry_not_populated_by_ingestion(self, collector, sinks, sender):
        store, log = sinks

        sender.sendto(PUSH_DATA, collector.address)

        assert wait_for(lambda: len(log.records) == 1)
        with pytest.raises(GatewayNotFoundError):
            collector.get_gateway(GATEWAY_ID)

    def test_read_error_does_not_stop_loop(self, collector, sinks, sender, caplog):
        store, log = sinks
        collector._sock = FlakySocket(collector._sock)

        with caplog.at_level(logging.ERROR):
            assert wait_for(lambda: collector.get_stats()["read_errors"] == 1)
            sender.sendto(PUSH_DATA, collector.address)
            assert wait_for(lambda: len(log.records) == 1)

        assert "Read from udp error" in caplog.text
        assert store.records[0].data == PUSH_DATA

    def test_slow_sink_does_not_block_reads(self, sender):
        sink = BlockingSink()
        config = LoggerConfig(bind="127.0.0.1:0", store="none", log_path="")
        collector = Collector(config, chain=SinkChain([sink]))

        try:
            sender.sendto(PUSH_DATA, collector.address)
            sender.sendto(PUSH_DATA + b"2", collector.address)

            assert wait_for(lambda: sink.entered == 2)
            stats = collector.get_stats()
            assert stats["received"] == 2
            assert stats["inflight"] == 2
        finally:
            sink.release.set()
            collector.close(drain_timeout=5.0)

        assert collector.inflight == 0


class TestHandlePacket:

    def test_push_data(self, collector, sinks):
        store, log = sinks

        assert collector.handle_packet(PUSH_DATA, ("192.0.2.1", 1700))

        assert store.records[0].gateway_id == GATEWAY_ID

    def test_ack_without_gateway_is_not_stored(self, collector, sinks):
        store, log = sinks

        assert not collector.handle_packet(bytes([0x02, 0x00, 0x01, 0x01]), ("192.0.2.1", 1700))

        assert store.records == []
        assert collector.get_stats()["skipped"] == 1

    def test_malformed_header_raises(self, collector):
        with pytest.raises(MalformedHeaderError):
            collector.handle_packet(b"\x02\x00\x01", ("192.0.2.1", 1700))

    def test_store_failure_skips_log(self, caplog):
        store = mock.Mock()
        store.name = "store"
        store.write.side_effect = SinkError("throughput exceeded")
        log = mock.Mock()
        log.name = "log"
        config = LoggerConfig(bind="127.0.0.1:0", store="none", log_path="")

        with Collector(config, chain=SinkChain([store, log])) as collector:
            with caplog.at_level(logging.ERROR):
                collector.handle_packet(PUSH_DATA, ("192.0.2.1", 1700))

        assert store.write.call_count == 1
        assert log.write.call_count == 0
        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(errors) == 1

    def test_handler_thread_never_raises(self, collector, caplog):
        with caplog.at_level(logging.ERROR):
            collector._inflight += 1
            collector._handle_datagram(b"\x09\x00\x01\x00", ("192.0.2.1", 1700))

        assert "Could not handle packet" in caplog.text
        assert collector.inflight == 0


class TestLifecycle:

    def test_close_stops_reader(self, sinks):
        config = LoggerConfig(bind="127.0.0.1:0", store="none", log_path="")
        collector = Collector(config, chain=SinkChain(list(sinks)))

        collector.close()

        assert collector.is_closed()
        assert not collector._rx_thread.is_alive()
        assert all(sink.closed for sink in sinks)

    def test_close_is_idempotent(self, collector):
        collector.close()
        collector.close()

        assert collector.is_closed()

    def test_close_is_not_logged_as_error(self, sinks, caplog):
        config = LoggerConfig(bind="127.0.0.1:0", store="none", log_path="")
        collector = Collector(config, chain=SinkChain(list(sinks)))

        with caplog.at_level(logging.ERROR):
            collector.close()

        assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []

    def test_bind_in_use(self, sinks):
        taken = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        taken.bind(("127.0.0.1", 0))
        port = taken.getsockname()[1]
        try:
            config = LoggerConfig(bind=f"127.0.0.1:{port}", store="none", log_path="")
            with pytest.raises(CollectorError, match="Listen udp error"):
                Collector(config, chain=SinkChain(list(sinks)))
        finally:
            taken.close()

        assert all(sink.closed for sink in sinks)

    def test_failed_socket_close_still_stops(self, sinks):
        config = LoggerConfig(bind="127.0.0.1:0", store="none", log_path="")
        collector = Collector(config, chain=SinkChain(list(sinks)))
        real = collector._sock
        collector._sock = UnclosableSocket(real)

        try:
            with pytest.raises(CollectorError, match="Close udp listener error"):
                collector.close()

            assert collector.is_closed()
            assert not collector._rx_thread.is_alive()
            assert all(sink.closed for sink in sinks)
        finally:
            real.close()

    def test_registry_capability(self, collector):
        collector.set_gateway(GATEWAY_EUI.hex(), ("10.0.0.5", 1700))

        assert collector.get_gateway(GATEWAY_ID) == ("10.0.0.5", 1700)
        assert collector.get_stats()["gateways"] == 1


class TestBuildSinkChain:

    def test_sqlite_then_log(self, tmp_path):
        config = LoggerConfig(
            store="sqlite",
            sqlite_path=tmp_path / "packets.db",
            log_path=str(tmp_path / "%Y-%m-%d.log"),
            sink_policy=SinkPolicy.INDEPENDENT,
        )

        chain = build_sink_chain(config)

        assert [type(s) for s in chain.sinks] == [SQLiteStoreSink, DailyLogSink]
        assert chain.policy is SinkPolicy.INDEPENDENT

    def test_log_only(self, tmp_path):
        config = LoggerConfig(store="none", log_path=str(tmp_path / "%Y.log"))

        chain = build_sink_chain(config)

        assert [s.name for s in chain.sinks] == ["logfile"]

    def test_dynamodb_first(self, tmp_path, monkeypatch):
        from loralogger.sink import dynamodb

        created = {}

        def fake_client(**kwargs):
            created.update(kwargs)
            return mock.Mock()

        monkeypatch.setattr(dynamodb, "create_client", fake_client)
        config = LoggerConfig(
            store="dynamodb",
            region="eu-west-2",
            table="lora",
            credentials_path="/etc/loralogger/credentials",
            credentials_profile="logger",
            log_path=str(tmp_path / "%Y.log"),
        )

        chain = build_sink_chain(config)

        assert [s.name for s in chain.sinks] == ["dynamodb", "logfile"]
        assert created == {
            "region": "eu-west-2",
            "credentials_path": "/etc/loralogger/credentials",
            "credentials_profile": "logger",
        }
