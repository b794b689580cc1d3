"""
Storage Module - File Access for Transfers

Injected read/write ports and served-root path resolution.
"""

from .paths import resolve_path
from .ports import (
    ByteSource,
    ByteSink,
    ReadPort,
    WritePort,
    LocalFilePorts,
    MemoryFilePorts,
)

__all__ = [
    'resolve_path',
    'ByteSource',
    'ByteSink',
    'ReadPort',
    'WritePort',
    'LocalFilePorts',
    'MemoryFilePorts',
]
