"""
LoRa Logger Collector

Owns the UDP socket the packet-forwarders send to, and records every
datagram through the configured sinks.

Threads:
- udp-rx:     Single reader, blocking reads into a reused buffer
- per packet: One short-lived daemon thread per datagram
              (decode -> sink chain)

There is no bound on the number of per-packet threads in flight. A
flood of datagrams produces as many concurrent sink writes.

Shutdown sets the closed flag, closes the socket and joins the reader.
Per-packet threads already started may still be writing afterwards
unless a drain timeout is given.
"""

import base64
import logging
import socket
import threading
from typing import Optional, Tuple

from . import MAX_DATAGRAM_SIZE
from .config import LoggerConfig, parse_bind
from .gateway.registry import Address, GatewayRegistry
from .packet.format import HeaderError, decode_header
from .sink.base import PacketRecord
from .sink.chain import SinkChain
from .sink.logfile import DailyLogSink
from .sink.sqlite import SQLiteStoreSink


logger = logging.getLogger("loralogger.collector")

# Seconds a blocked read waits before re-checking the closed flag
READ_POLL_INTERVAL = 1.0

# Seconds close() waits for the reader thread
READER_JOIN_TIMEOUT = 5.0


class CollectorError(Exception):
    """Raised when the collector cannot start or stop its listener."""
    pass


def build_sink_chain(config: LoggerConfig) -> SinkChain:
    """
    Build the sink chain described by the configuration.
    
    The TTL store (if any) always comes first, the daily log second.
    """
    sinks = []
    
    if config.store == "dynamodb":
        from .sink.dynamodb import DynamoDBSink
        sinks.append(DynamoDBSink(
            table=config.table,
            region=config.region,
            credentials_path=config.credentials_path,
            credentials_profile=config.credentials_profile,
        ))
    elif config.store == "sqlite":
        sinks.append(SQLiteStoreSink(config.sqlite_path))
    
    if config.log_path:
        sinks.append(DailyLogSink(config.log_path))
    
    return SinkChain(sinks, config.sink_policy)


def resolve_bind(bind: str) -> Tuple[int, tuple]:
    """Resolve a host:port string to (address family, socket address)."""
    host, port = parse_bind(bind)
    try:
        infos = socket.getaddrinfo(
            host or None, port,
            0, socket.SOCK_DGRAM, 0, socket.AI_PASSIVE,
        )
    except socket.gaierror as e:
        raise CollectorError(f"Resolve udp addr error: {bind}: {e}") from e
    
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


class Collector:
    """
    Passive packet-forwarder UDP collector.
    
    Usage:
        collector = Collector(config.loralogger)
        ...
        collector.close()
    
    or as a context manager:
        with Collector(config.loralogger) as collector:
            ...
    """
    
    def __init__(
        self,
        config: LoggerConfig,
        chain: Optional[SinkChain] = None,
        registry: Optional[GatewayRegistry] = None,
    ):
        """
        Bind the UDP socket and start the reader thread.
        
        Args:
            config: Collector configuration
            chain: Sink chain (default: built from config)
            registry: Gateway registry (default: a new one)
        
        Raises:
            CollectorError: If the bind address cannot be resolved or bound.
                The chain is closed before the error propagates.
        """
        self.config = config
        self._registry = registry or GatewayRegistry()
        
        # The closed flag shares the registry's lock
        self._lock = self._registry.lock
        self._closed = False
        
        # In-flight per-packet threads
        self._inflight = 0
        self._inflight_cond = threading.Condition()
        
        # Statistics
        self._stats_lock = threading.Lock()
        self._stats = {
            "received": 0,
            "read_errors": 0,
            "dropped": 0,
            "skipped": 0,
            "stored": 0,
            "failed": 0,
        }
        
        self._chain = chain if chain is not None else build_sink_chain(config)
        
        try:
            self._sock = self._listen(config.bind)
        except CollectorError:
            # The collector owns the chain from here on
            self._chain.close()
            raise
        
        logger.info(f"Starting listener addr={self.address}")
        self._rx_thread = threading.Thread(
            target=self._run_reader,
            daemon=True,
            name="udp-rx",
        )
        self._rx_thread.start()
    
    @staticmethod
    def _listen(bind: str) -> socket.socket:
        """Create and bind the UDP socket."""
        family, sockaddr = resolve_bind(bind)
        try:
            sock = socket.socket(family, socket.SOCK_DGRAM)
        except OSError as e:
            raise CollectorError(f"Listen udp error: {bind}: {e}") from e
        try:
            sock.bind(sockaddr)
        except OSError as e:
            sock.close()
            raise CollectorError(f"Listen udp error: {bind}: {e}") from e
        sock.settimeout(READ_POLL_INTERVAL)
        return sock
    
    # === Lifecycle ===
    
    @property
    def address(self) -> tuple:
        """Local address the socket is bound to."""
        return self._sock.getsockname()
    
    @property
    def registry(self) -> GatewayRegistry:
        return self._registry
    
    @property
    def chain(self) -> SinkChain:
        return self._chain
    
    def is_closed(self) -> bool:
        with self._lock.read():
            return self._closed
    
    def close(self, drain_timeout: float = 0.0) -> None:
        """
        Stop the collector.
        
        Args:
            drain_timeout: Seconds to wait for in-flight packets before
                closing the sinks (0 = do not wait)
        
        Raises:
            CollectorError: If the socket cannot be closed. The reader
                is still stopped and the sinks closed first.
        """
        close_error = None
        with self._lock.write():
            if self._closed:
                return
            self._closed = True
            
            logger.info("Closing listener")
            try:
                # Wakes a reader blocked in recvfrom on Linux
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self._sock.close()
            except OSError as e:
                close_error = e
        
        if self._rx_thread is not threading.current_thread():
            self._rx_thread.join(timeout=READER_JOIN_TIMEOUT)
        
        if drain_timeout > 0:
            if not self.wait_idle(drain_timeout):
                logger.warning(f"Closing with {self.inflight} packet(s) still in flight")
        
        self._chain.close()
        
        if close_error is not None:
            raise CollectorError(f"Close udp listener error: {close_error}") from close_error
        logger.info("Listener closed")
    
    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until no per-packet thread is running.
        
        Returns:
            True if idle, False on timeout
        """
        with self._inflight_cond:
            return self._inflight_cond.wait_for(lambda: self._inflight == 0, timeout)
    
    @property
    def inflight(self) -> int:
        with self._inflight_cond:
            return self._inflight
    
    def __enter__(self) -> 'Collector':
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
    
    # === Gateway Registry ===
    
    def set_gateway(self, gateway_id: str, addr: Address) -> None:
        """Record the source address of a gateway (for a downlink path)."""
        self._registry.set_gateway(gateway_id, addr)
    
    def get_gateway(self, gateway_id: str) -> Address:
        """Return the last known address of a gateway."""
        return self._registry.get_gateway(gateway_id)
    
    # === Reader ===
    
    def _run_reader(self) -> None:
        """Reader thread entry point."""
        try:
            self._read_packets()
        except Exception as e:
            if not self.is_closed():
                logger.error(f"Read udp packets error: {e}", exc_info=True)
    
    def _read_packets(self) -> None:
        """Read datagrams until the collector is closed."""
        buf = bytearray(MAX_DATAGRAM_SIZE)
        view = memoryview(buf)
        
        while True:
            try:
                nbytes, addr = self._sock.recvfrom_into(buf)
            except socket.timeout:
                if self.is_closed():
                    return
                continue
            except OSError as e:
                if self.is_closed():
                    return
                self._count("read_errors")
                logger.error(f"Read from udp error: {e}")
                continue
            
            if self.is_closed():
                return
            
            # Copy out of the reused buffer before handing off
            data = bytes(view[:nbytes])
            self._count("received")
            self._dispatch(data, addr)
    
    def _dispatch(self, data: bytes, addr: Address) -> None:
        """Handle a datagram on its own thread."""
        with self._inflight_cond:
            self._inflight += 1
        
        thread = threading.Thread(
            target=self._handle_datagram,
            args=(data, addr),
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            self._packet_done()
            logger.error(f"Could not start packet handler: {e} (addr={addr})")
    
    def _packet_done(self) -> None:
        with self._inflight_cond:
            self._inflight -= 1
            if self._inflight == 0:
                self._inflight_cond.notify_all()
    
    # === Packet Handling ===
    
    def _handle_datagram(self, data: bytes, addr: Address) -> None:
        """Per-packet thread entry point. Never raises."""
        try:
            self.handle_packet(data, addr)
        except HeaderError as e:
            self._count("dropped")
            logger.error(
                f"Could not handle packet: {e} "
                f"(addr={addr} data_base64={base64.b64encode(data).decode('ascii')})"
            )
        except Exception as e:
            self._count("failed")
            logger.error(
                f"Could not handle packet: {e} "
                f"(addr={addr} data_base64={base64.b64encode(data).decode('ascii')})",
                exc_info=True,
            )
        finally:
            self._packet_done()
    
    def handle_packet(self, data: bytes, addr: Address) -> bool:
        """
        Decode a datagram and write it through the sink chain.
        
        Returns:
            True if every sink stored the packet
        
        Raises:
            HeaderError: If the header cannot be decoded
        """
        header = decode_header(data)
        
        if header.gateway_id is None:
            # Server -> gateway traffic carries no gateway ID
            self._count("skipped")
            logger.debug(
                f"Ignoring packet without gateway ID "
                f"packet_type={header.packet_type.name} from_addr={addr}"
            )
            return False
        
        logger.info(
            f"Logging packet from_addr={addr} gateway_id={header.gateway_id} "
            f"packet_type={header.packet_type.name}"
        )
        
        record = PacketRecord(gateway_id=header.gateway_id, data=data, addr=addr)
        result = self._chain.write(record)
        
        if result.ok:
            self._count("stored")
        else:
            self._count("failed")
        return result.ok
    
    # === Statistics ===
    
    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1
    
    def get_stats(self) -> dict:
        """Get collector statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        stats["inflight"] = self.inflight
        stats["gateways"] = len(self._registry)
        stats["sinks"] = [sink.name for sink in self._chain.sinks]
        stats["sink_policy"] = self._chain.policy.value
        return stats
