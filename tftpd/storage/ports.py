"""
File Ports

Design Decision: How Sessions Reach Files
=========================================

Options Considered:
1. Sessions call open() themselves
   - Simple
   - Every test needs a real directory, every failure a real filesystem

2. Callback functions (open_for_read(path), open_for_write(path))
   - Injectable, but no place to hang shared settings

3. Small capability objects passed to the server
   - ReadPort hands out ByteSources, WritePort hands out ByteSinks
   - Tests swap in in-memory ports

Decision: Capability objects
- LocalFilePorts serves a directory through aiofiles, so file I/O runs
  in a worker thread instead of blocking the event loop
- MemoryFilePorts keeps files in a dict for tests and embedding

Both kinds of ports raise OSError subclasses on failure; the session maps
them to protocol error codes.
"""

import io
from pathlib import Path
from typing import Dict, Protocol

import aiofiles


class ByteSource(Protocol):
    """Readable side of an open file."""

    async def read(self, size: int = -1) -> bytes: ...

    async def close(self) -> None: ...


class ByteSink(Protocol):
    """Writable side of an open file."""

    async def write(self, data: bytes) -> int: ...

    async def close(self) -> None: ...


class ReadPort(Protocol):
    async def open_for_read(self, path: Path) -> ByteSource: ...


class WritePort(Protocol):
    async def open_for_write(self, path: Path) -> ByteSink: ...


class LocalFilePorts:
    """
    Reads and writes files on the local filesystem.

    Writes create or truncate the target, matching a plain open(path, 'wb').
    Set `overwrite=False` to refuse existing files (FILE_ALREADY_EXISTS).
    """

    def __init__(self, overwrite: bool = True):
        self.overwrite = overwrite

    async def open_for_read(self, path: Path) -> ByteSource:
        return await aiofiles.open(path, 'rb')

    async def open_for_write(self, path: Path) -> ByteSink:
        mode = 'wb' if self.overwrite else 'xb'
        return await aiofiles.open(path, mode)


class MemorySource:
    """ByteSource over an in-memory buffer."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    async def close(self):
        self.closed = True


class MemorySink:
    """ByteSink that appends into a MemoryFilePorts store."""

    def __init__(self, store: Dict[str, bytes], key: str):
        self._store = store
        self._key = key
        self._buffer = bytearray()
        self.writes = 0
        self.closed = False

    async def write(self, data: bytes) -> int:
        self._buffer.extend(data)
        self.writes += 1
        self._store[self._key] = bytes(self._buffer)
        return len(data)

    async def close(self):
        self.closed = True


class MemoryFilePorts:
    """
    In-memory read and write ports.

    Files are keyed by their final path component, so a request for
    "a.txt" finds files["a.txt"] whatever the served root is.
    """

    def __init__(self, files: Dict[str, bytes] = None, writable: bool = True):
        self.files: Dict[str, bytes] = dict(files or {})
        self.writable = writable
        self.sinks: Dict[str, MemorySink] = {}

    @staticmethod
    def key(path: Path) -> str:
        return Path(path).name

    async def open_for_read(self, path: Path) -> ByteSource:
        key = self.key(path)
        if key not in self.files:
            raise FileNotFoundError(f"No such file: {key}")
        return MemorySource(self.files[key])

    async def open_for_write(self, path: Path) -> ByteSink:
        if not self.writable:
            raise PermissionError(f"Read-only store: {self.key(path)}")
        key = self.key(path)
        self.files[key] = b''
        sink = MemorySink(self.files, key)
        self.sinks[key] = sink
        return sink
