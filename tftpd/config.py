"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .packet import TFTP_PORT
from .transfer import TransferPolicy


@dataclass
class Config:
    """
    TFTP Server Configuration.

    Configuration priority (highest to lowest):
    1. Command-line flags
    2. Environment variables (TFTP_*, also read from .env)
    3. Config file (JSON)
    4. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = TFTP_PORT

    # Storage
    root: Path = field(default_factory=Path.cwd)
    allow_write: bool = True

    # Timeouts (seconds)
    retry_interval: float = 3.0
    timeout: float = 30.0
    linger: float = 3.0

    # Logging
    log_level: str = 'INFO'

    def policy(self) -> TransferPolicy:
        """Retry/timeout policy handed to every transfer session."""
        return TransferPolicy(
            retry_interval=self.retry_interval,
            timeout=self.timeout,
            linger=self.linger,
        )

    @classmethod
    def from_env(cls, base: Optional['Config'] = None) -> 'Config':
        """
        Load configuration from environment variables.

        Only variables that are set override `base` (defaults if omitted).
        """
        load_dotenv()

        config = replace(base) if base is not None else cls()

        # Network
        config.host = os.getenv('TFTP_HOST', config.host)
        config.port = int(os.getenv('TFTP_PORT', config.port))

        # Storage
        root = os.getenv('TFTP_ROOT')
        if root:
            config.root = Path(root)
        config.allow_write = _parse_bool(
            os.getenv('TFTP_ALLOW_WRITE'), config.allow_write
        )

        # Timeouts
        config.retry_interval = float(
            os.getenv('TFTP_RETRY_INTERVAL', config.retry_interval)
        )
        config.timeout = float(os.getenv('TFTP_TIMEOUT', config.timeout))
        config.linger = float(os.getenv('TFTP_LINGER', config.linger))

        # Logging
        config.log_level = os.getenv('TFTP_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port = int(data.get('port', config.port))

        # Storage
        if 'root' in data:
            config.root = Path(data['root'])
        allow_write = data.get('allow_write', config.allow_write)
        if isinstance(allow_write, str):
            allow_write = _parse_bool(allow_write, config.allow_write)
        config.allow_write = bool(allow_write)

        # Timeouts
        config.retry_interval = float(data.get('retry_interval', config.retry_interval))
        config.timeout = float(data.get('timeout', config.timeout))
        config.linger = float(data.get('linger', config.linger))

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'root': str(self.root),
            'allow_write': self.allow_write,
            'retry_interval': self.retry_interval,
            'timeout': self.timeout,
            'linger': self.linger,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with whatever environment variables are set
    return Config.from_env(config)


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "port": 69,
  "root": "/srv/tftp",
  "allow_write": false,
  "retry_interval": 3.0,
  "timeout": 30.0,
  "linger": 3.0,
  "log_level": "INFO"
}
"""
