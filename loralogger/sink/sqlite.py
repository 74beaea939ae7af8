"""
SQLite Store Sink

Local TTL store for raw packet records, using the same key layout as
the DynamoDB table.

Features:
- SQLite-based persistence
- Upsert by (item, date_or_time)
- Expiry timestamps with explicit cleanup
- Thread-safe operations

Design:
- One short-lived connection per operation
- Writes serialized by a lock; reads run concurrently
- Expired rows are removed by cleanup_expired(), not on write
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .base import Sink, SinkError, PacketRecord


logger = logging.getLogger("loralogger.sink.sqlite")

# Default storage location
DEFAULT_STORE_PATH = Path("/var/lib/loralogger/packets.db")


@dataclass
class StoredPacket:
    """
    Stored packet row.
    """
    item: str             # Partition key ("raw#YYYY-MM-DD")
    date_or_time: str     # Sort key (HH:MM:SS.ffffff)
    gateway_id: str
    packet: str           # Base64 datagram
    expires: int          # Unix expiry time


class SQLiteStoreSink(Sink):
    """
    TTL store sink backed by a local SQLite database.
    
    Usage:
        sink = SQLiteStoreSink(Path("/var/lib/loralogger/packets.db"))
        sink.write(record)
        
        # Periodically
        sink.cleanup_expired()
    """
    
    name = "sqlite"
    
    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize SQLite store.
        
        Args:
            db_path: Path to SQLite database
        
        Raises:
            SinkError: If the database cannot be created or opened
        """
        self._db_path = Path(db_path or DEFAULT_STORE_PATH)
        self._lock = threading.RLock()
        
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise SinkError(f"SQLite error: {self._db_path}: {e}") from e
    
    @property
    def db_path(self) -> Path:
        return self._db_path
    
    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS packets (
                    item TEXT NOT NULL,
                    date_or_time TEXT NOT NULL,
                    gateway_id TEXT NOT NULL,
                    packet TEXT NOT NULL,
                    expires INTEGER NOT NULL,
                    PRIMARY KEY (item, date_or_time)
                )
            """)
            
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_packets_expires
                ON packets(expires)
            """)
            
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_packets_gateway
                ON packets(gateway_id)
            """)
    
    @contextmanager
    def _get_connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(
            str(self._db_path),
            timeout=30.0,
            isolation_level=None,  # Autocommit
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()
    
    def _row_to_packet(self, row: sqlite3.Row) -> StoredPacket:
        return StoredPacket(
            item=row["item"],
            date_or_time=row["date_or_time"],
            gateway_id=row["gateway_id"],
            packet=row["packet"],
            expires=row["expires"],
        )
    
    def write(self, record: PacketRecord) -> None:
        """Upsert a record keyed by receive date and time of day."""
        try:
            with self._lock:
                with self._get_connection() as conn:
                    conn.execute("""
                        INSERT INTO packets
                        (item, date_or_time, gateway_id, packet, expires)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(item, date_or_time) DO UPDATE SET
                            gateway_id = excluded.gateway_id,
                            packet = excluded.packet,
                            expires = excluded.expires
                    """, (
                        record.partition_key,
                        record.sort_key,
                        record.gateway_id,
                        record.data_base64,
                        record.expires,
                    ))
        except sqlite3.Error as e:
            raise SinkError(f"SQLite error: {e}") from e
        
        logger.debug(
            f"Stored packet gateway_id={record.gateway_id} "
            f"item={record.partition_key} date_or_time={record.sort_key}"
        )
    
    def get_packet(self, item: str, date_or_time: str) -> Optional[StoredPacket]:
        """Get a stored packet by key."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM packets WHERE item = ? AND date_or_time = ?",
                (item, date_or_time)
            ).fetchone()
            
            if row:
                return self._row_to_packet(row)
            return None
    
    def get_packets(self, item: str, limit: int = 100) -> List[StoredPacket]:
        """
        Get packets of one partition in time order.
        
        Args:
            item: Partition key ("raw#YYYY-MM-DD")
            limit: Maximum number of packets to return
        """
        with self._get_connection() as conn:
            rows = conn.execute("""
                SELECT * FROM packets
                WHERE item = ?
                ORDER BY date_or_time ASC
                LIMIT ?
            """, (item, limit)).fetchall()
            
            return [self._row_to_packet(row) for row in rows]
    
    def cleanup_expired(self, now: Optional[float] = None) -> int:
        """
        Remove expired packets.
        
        Returns:
            Number of packets removed
        """
        now = time.time() if now is None else now
        
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM packets WHERE expires < ?",
                    (int(now),)
                )
                return cursor.rowcount
    
    def get_stats(self) -> dict:
        """Get storage statistics."""
        with self._get_connection() as conn:
            stats = {}
            
            row = conn.execute("SELECT COUNT(*) as count FROM packets").fetchone()
            stats["total"] = row["count"]
            
            row = conn.execute(
                "SELECT COUNT(DISTINCT gateway_id) as count FROM packets"
            ).fetchone()
            stats["gateways"] = row["count"]
            
            stats["db_path"] = str(self._db_path)
            if self._db_path.exists():
                stats["db_size_bytes"] = self._db_path.stat().st_size
            
            return stats
