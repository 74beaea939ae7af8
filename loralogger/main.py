"""
LoRa Logger Main Entry Point

Commands:
- (default)   Run the collector until SIGINT/SIGTERM
- configfile  Print a configuration file filled with the current values

The running process:
- Binds the UDP listener
- Records every packet-forwarder datagram through the sink chain
- Periodically expires old rows from a local SQLite store
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from . import __version__
from .collector import Collector, CollectorError
from .config import Config, ConfigError, LOG_LEVELS
from .sink.base import SinkError
from .sink.sqlite import SQLiteStoreSink


logger = logging.getLogger("loralogger")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Seconds between maintenance runs
MAINTENANCE_INTERVAL = 3600

# Seconds to wait for in-flight packets on shutdown
SHUTDOWN_DRAIN_TIMEOUT = 5.0


def setup_logging(level: str) -> None:
    """Configure root logging."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def run_maintenance(collector: Collector) -> None:
    """Expire stored packets and report statistics."""
    for sink in collector.chain.sinks:
        if isinstance(sink, SQLiteStoreSink):
            removed = sink.cleanup_expired()
            if removed:
                logger.info(f"Removed {removed} expired packet(s) from {sink.db_path}")
    
    logger.debug(f"Collector stats: {collector.get_stats()}")


def run(config: Config) -> int:
    """Run the collector until a shutdown signal arrives."""
    try:
        collector = Collector(config.loralogger)
    except (CollectorError, SinkError) as e:
        logger.error(f"New loralogger error: {e}")
        return 1
    
    shutdown_event = threading.Event()
    
    def handle_signal(signum, frame):
        if shutdown_event.is_set():
            logger.info(f"Signal {signum} received, stopping immediately")
            sys.exit(1)
        logger.info(f"Signal {signum} received")
        shutdown_event.set()
    
    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)
    
    while not shutdown_event.wait(MAINTENANCE_INTERVAL):
        try:
            run_maintenance(collector)
        except Exception as e:
            logger.error(f"Maintenance error: {e}")
    
    logger.warning("Stopping loralogger")
    try:
        collector.close(drain_timeout=SHUTDOWN_DRAIN_TIMEOUT)
    except CollectorError as e:
        logger.error(str(e))
        return 1
    
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loralogger",
        description="LoRa packet-forwarder logger",
        epilog="Records packet-forwarder UDP data to DynamoDB, SQLite and daily log files.",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to configuration file (optional)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Log level (overrides the configuration file)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"loralogger {__version__}",
    )
    
    subparsers = parser.add_subparsers(dest="command", help="Command")
    subparsers.add_parser("configfile", help="Print the loralogger configuration file")
    
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    
    setup_logging(args.log_level or "INFO")
    
    try:
        config = Config.load(args.config)
        if args.log_level:
            config.general.log_level = args.log_level
        
        if args.command == "configfile":
            sys.stdout.write(config.to_toml())
            return 0
        
        config.validate()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    
    logging.getLogger().setLevel(config.general.log_level)
    
    return run(config)


if __name__ == "__main__":
    sys.exit(main())
