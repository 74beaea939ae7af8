"""Tests for the gateway registry and its lock."""

import threading
import time

import pytest

from loralogger.gateway.registry import (
    GatewayRegistry,
    GatewayNotFoundError,
    ReadWriteLock,
)


def test_set_then_get():
    registry = GatewayRegistry()
    registry.set_gateway("0102030405060708", ("10.0.0.5", 1700))

    assert registry.get_gateway("0102030405060708") == ("10.0.0.5", 1700)


def test_get_unknown_gateway():
    registry = GatewayRegistry()

    with pytest.raises(GatewayNotFoundError):
        registry.get_gateway("ffffffffffffffff")


def test_not_found_is_lookup_error():
    assert issubclass(GatewayNotFoundError, LookupError)


def test_last_write_wins():
    registry = GatewayRegistry()
    registry.set_gateway("aa", ("10.0.0.5", 1700))
    registry.set_gateway("aa", ("10.0.0.6", 1701))

    assert registry.get_gateway("aa") == ("10.0.0.6", 1701)
    assert len(registry) == 1


def test_snapshot_is_a_copy():
    registry = GatewayRegistry()
    registry.set_gateway("aa", ("10.0.0.5", 1700))

    snapshot = registry.snapshot()
    snapshot["bb"] = ("10.0.0.7", 1700)

    assert "bb" not in registry
    assert "aa" in registry


def test_concurrent_writers():
    registry = GatewayRegistry()

    def writer(n):
        for i in range(200):
            registry.set_gateway(f"{n:02x}{i:04x}", ("10.0.0.1", i))

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry) == 8 * 200
    assert registry.get_gateway("070010") == ("10.0.0.1", 16)


class TestReadWriteLock:

    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=2.0)

        def reader():
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert not inside.broken

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []

        lock.acquire_write()

        def reader():
            with lock.read():
                events.append("read")

        t = threading.Thread(target=reader)
        t.start()
        time.sleep(0.05)
        events.append("write-done")
        lock.release_write()
        t.join(timeout=5.0)

        assert events == ["write-done", "read"]

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        events = []

        lock.acquire_read()

        def writer():
            with lock.write():
                events.append("write")

        t = threading.Thread(target=writer)
        t.start()
        time.sleep(0.05)
        events.append("read-done")
        lock.release_read()
        t.join(timeout=5.0)

        assert events == ["read-done", "write"]
