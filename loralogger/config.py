"""
LoRa Logger Configuration Management

Handles loading and validation of configuration from TOML file.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import toml

from .sink.chain import SinkPolicy


# Default configuration file name
CONFIG_FILE_NAME = "loralogger.toml"

# Configuration search path (first existing file wins)
DEFAULT_CONFIG_PATHS = [
    Path(".") / CONFIG_FILE_NAME,
    Path.home() / ".config" / "loralogger" / CONFIG_FILE_NAME,
    Path("/etc/loralogger") / CONFIG_FILE_NAME,
]

# Default bind address
DEFAULT_BIND = "0.0.0.0:1950"

# Default data locations
DEFAULT_SQLITE_PATH = Path("/var/lib/loralogger/packets.db")
DEFAULT_LOG_PATH = "/var/log/loralogger/%Y/%m/%d/lora.log"

# Supported TTL store backends
STORE_TYPES = ("dynamodb", "sqlite", "none")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Raised for invalid or unreadable configuration."""
    pass


@dataclass
class GeneralConfig:
    """General settings."""
    log_level: str = "INFO"


@dataclass
class LoggerConfig:
    """Collector settings."""
    # host:port to receive packet-forwarder UDP data on
    bind: str = DEFAULT_BIND
    
    # fail_fast: log file only written after a successful store write
    # independent: every sink attempted
    sink_policy: SinkPolicy = SinkPolicy.FAIL_FAST
    
    # TTL store backend
    store: str = "dynamodb"
    
    # DynamoDB
    region: str = ""
    table: str = ""
    credentials_path: str = ""
    credentials_profile: str = ""
    
    # SQLite
    sqlite_path: Path = field(default_factory=lambda: DEFAULT_SQLITE_PATH)
    
    # Daily log file (strftime pattern, empty disables)
    log_path: str = DEFAULT_LOG_PATH


@dataclass
class Config:
    """
    Complete LoRa Logger configuration.
    """
    general: GeneralConfig = field(default_factory=GeneralConfig)
    loralogger: LoggerConfig = field(default_factory=LoggerConfig)
    
    # Where the configuration was loaded from (None = defaults)
    config_path: Optional[Path] = None
    
    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> 'Config':
        """
        Load configuration from file.
        
        Args:
            config_path: Path to config file. When None the default
                search path is used and a missing file means defaults.
        
        Returns:
            Loaded configuration
        
        Raises:
            ConfigError: If an explicit path is missing or a file
                cannot be parsed
        """
        config = cls()
        
        if config_path is None:
            path = find_config_file()
            if path is None:
                logging.getLogger("loralogger.config").warning(
                    "No configuration file found, using defaults."
                )
                return config
        else:
            path = Path(config_path)
            if not path.exists():
                raise ConfigError(f"Configuration file not found: {path}")
        
        try:
            data = toml.load(path)
        except (OSError, toml.TomlDecodeError) as e:
            raise ConfigError(f"Error loading config file {path}: {e}") from e
        
        config.config_path = path
        config._apply_dict(data)
        return config
    
    def _apply_dict(self, data: Dict[str, Any]) -> None:
        """Apply dictionary data to config."""
        if "general" in data:
            g = data["general"]
            if "log_level" in g:
                self.general.log_level = str(g["log_level"]).upper()
        
        if "loralogger" in data:
            c = data["loralogger"]
            if "bind" in c:
                self.loralogger.bind = str(c["bind"])
            if "sink_policy" in c:
                try:
                    self.loralogger.sink_policy = SinkPolicy(str(c["sink_policy"]).lower())
                except ValueError:
                    raise ConfigError(f"Invalid sink policy: {c['sink_policy']}") from None
            if "store" in c:
                self.loralogger.store = str(c["store"]).lower()
            if "region" in c:
                self.loralogger.region = str(c["region"])
            if "table" in c:
                self.loralogger.table = str(c["table"])
            if "credentials_path" in c:
                self.loralogger.credentials_path = str(c["credentials_path"])
            if "credentials_profile" in c:
                self.loralogger.credentials_profile = str(c["credentials_profile"])
            if "sqlite_path" in c:
                self.loralogger.sqlite_path = Path(c["sqlite_path"])
            if "log_path" in c:
                self.loralogger.log_path = str(c["log_path"])
    
    def validate(self) -> None:
        """
        Validate configuration.
        
        Raises:
            ConfigError: If configuration is invalid
        """
        if self.general.log_level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log level: {self.general.log_level}")
        
        parse_bind(self.loralogger.bind)
        
        store = self.loralogger.store
        if store not in STORE_TYPES:
            raise ConfigError(f"Invalid store: {store} (expected one of {', '.join(STORE_TYPES)})")
        
        if store == "dynamodb":
            if not self.loralogger.table:
                raise ConfigError("DynamoDB store requires a table name")
            if not self.loralogger.region:
                raise ConfigError("DynamoDB store requires a region")
        
        if store == "none" and not self.loralogger.log_path:
            raise ConfigError("No sinks configured: set a store or a log_path")
    
    def to_toml(self) -> str:
        """Render the configuration as a commented TOML file."""
        c = self.loralogger
        return CONFIG_TEMPLATE.format(
            log_level=self.general.log_level,
            bind=c.bind,
            sink_policy=c.sink_policy.value,
            store=c.store,
            region=c.region,
            table=c.table,
            credentials_path=c.credentials_path,
            credentials_profile=c.credentials_profile,
            sqlite_path=c.sqlite_path,
            log_path=c.log_path,
        )


def find_config_file(paths: Optional[List[Path]] = None) -> Optional[Path]:
    """Return the first existing file in the search path."""
    for path in paths or DEFAULT_CONFIG_PATHS:
        if path.is_file():
            return path
    return None


def parse_bind(bind: str) -> Tuple[str, int]:
    """
    Split a host:port bind address.
    
    IPv6 hosts may be given in brackets ("[::]:1950").
    
    Raises:
        ConfigError: If the address is malformed
    """
    host, sep, port_text = bind.rpartition(":")
    if not sep:
        raise ConfigError(f"Invalid bind address (expected host:port): {bind!r}")
    
    host = host.strip("[]")
    try:
        port = int(port_text)
    except ValueError:
        raise ConfigError(f"Invalid bind port: {port_text!r}") from None
    
    if port < 0 or port > 65535:
        raise ConfigError(f"Invalid bind port: {port}")
    
    return host, port


CONFIG_TEMPLATE = """\
[general]
# Log level
#
# DEBUG, INFO, WARNING, ERROR or CRITICAL
log_level="{log_level}"


[loralogger]
# Bind
#
# The interface:port on which the loralogger will bind for receiving
# data from the packet-forwarder (UDP data).
bind="{bind}"

# Sink policy
#
# fail_fast:   the log file is only written when the store write succeeded
# independent: every sink is attempted regardless of the others
sink_policy="{sink_policy}"

# Store
#
# The TTL store records are written to: dynamodb, sqlite or none.
store="{store}"

# Region
#
# The region in which the DynamoDB is running.
region="{region}"

# Table
#
# The name of the DynamoDB table to use.
table="{table}"

# Credentials path
#
# The path to your AWS shared credentials.
credentials_path="{credentials_path}"

# Credentials profile
#
# The profile from your AWS shared credentials.
credentials_profile="{credentials_profile}"

# SQLite path
#
# Database file used when store="sqlite".
sqlite_path="{sqlite_path}"

# Log path
#
# strftime pattern of the daily packet log. Leave empty to disable.
log_path="{log_path}"
"""
