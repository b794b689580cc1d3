"""
tftpd - RFC 1350 TFTP Server

Serves read and write requests for files under a root directory over UDP,
one asyncio task and one ephemeral port per transfer.
"""

from .errors import (
    ErrorCode,
    TFTPError,
    MalformedPacket,
    UnrecognizedOpcode,
    IllegalOperation,
    ProtocolError,
    TransferTimeout,
    BlockSequenceViolation,
    IOFailure,
)
from .server import TFTPServer
from .storage import LocalFilePorts, MemoryFilePorts
from .transfer import TransferPolicy, TransferResult, TransferSession

__version__ = '0.1.0'

__all__ = [
    'ErrorCode',
    'TFTPError',
    'MalformedPacket',
    'UnrecognizedOpcode',
    'IllegalOperation',
    'ProtocolError',
    'TransferTimeout',
    'BlockSequenceViolation',
    'IOFailure',
    'TFTPServer',
    'LocalFilePorts',
    'MemoryFilePorts',
    'TransferPolicy',
    'TransferResult',
    'TransferSession',
]
