"""
Daily Log Sink

Appends one line per packet to a log file partitioned by date.

Line Format:
    <ISO-8601 timestamp>, <gateway ID>, <base64 datagram>

The file path is the receive time formatted with a strftime pattern,
e.g. /var/log/loralogger/%Y/%m/%d/lora.log. Directories are created on
demand and files are always opened for append, so a restart mid-day
continues the existing file.
"""

import logging
import threading
from pathlib import Path
from typing import IO, Optional

from .base import Sink, SinkError, PacketRecord


logger = logging.getLogger("loralogger.sink.logfile")

# Default path pattern (strftime)
DEFAULT_PATH_PATTERN = "/var/log/loralogger/%Y/%m/%d/lora.log"


def format_line(record: PacketRecord) -> str:
    """Render a record as a log line."""
    timestamp = record.received_at.isoformat(timespec="seconds")
    return f"{timestamp}, {record.gateway_id}, {record.data_base64}\n"


class DailyLogSink(Sink):
    """
    Append-only log sink with one file per day.
    
    The current file stays open until a record maps to a different
    path; writes from concurrent threads are serialized.
    
    Usage:
        sink = DailyLogSink("/var/log/loralogger/%Y/%m/%d/lora.log")
        sink.write(record)
        sink.close()
    """
    
    name = "logfile"
    
    def __init__(self, path_pattern: str = DEFAULT_PATH_PATTERN):
        """
        Initialize log sink.
        
        Args:
            path_pattern: strftime pattern for the file path
        """
        self._path_pattern = str(path_pattern)
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._file: Optional[IO[str]] = None
    
    @property
    def current_path(self) -> Optional[Path]:
        """Path of the currently open file, if any."""
        return self._path
    
    def path_for(self, record: PacketRecord) -> Path:
        """File path a record belongs to."""
        return Path(record.received_at.strftime(self._path_pattern))
    
    def _open(self, path: Path) -> None:
        """Switch to a new file. Caller holds the lock."""
        self._close_file()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._file = path.open("a", encoding="utf-8")
        self._path = path
        logger.info(f"Opened log file {path}")
    
    def _close_file(self) -> None:
        if self._file is not None:
            try:
                self._file.close()
            finally:
                self._file = None
                self._path = None
    
    def write(self, record: PacketRecord) -> None:
        """Append a record to the file for its receive date."""
        path = self.path_for(record)
        line = format_line(record)
        
        try:
            with self._lock:
                if self._file is None or path != self._path:
                    self._open(path)
                self._file.write(line)
                self._file.flush()
        except OSError as e:
            raise SinkError(f"Log file error: {path}: {e}") from e
    
    def close(self) -> None:
        """Close the open file. A later write reopens it."""
        with self._lock:
            self._close_file()
