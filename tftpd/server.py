"""
TFTP Server - Request Dispatcher

Owns the well-known listening socket. Every datagram is decoded; valid
RRQ/WRQ packets start a TransferSession on a fresh ephemeral port and
everything else is dropped. Nothing can be sent back for a bad datagram
here: no transfer identifier exists yet.

The dispatcher never waits on a session. Sessions report back only
through the statistics counters updated when their task finishes.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Deque, Optional, Set, Tuple, Union

from .errors import MalformedPacket
from .packet import TFTP_PORT, RequestPacket, decode
from .storage import ReadPort, WritePort
from .transfer import (
    Direction, SessionChannel, TransferPolicy, TransferResult, TransferSession,
)

logger = logging.getLogger(__name__)


class DispatchProtocol(asyncio.DatagramProtocol):
    """UDP protocol for the listening socket."""

    def __init__(self, server: 'TFTPServer'):
        self.server = server
        self.transport: Optional[asyncio.DatagramTransport] = None

    def connection_made(self, transport: asyncio.DatagramTransport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        try:
            packet = decode(data)
        except MalformedPacket as e:
            logger.debug(f"Dropping malformed datagram from {addr}: {e}")
            return

        if not isinstance(packet, RequestPacket):
            logger.debug(f"Dropping {packet.opcode.name} from {addr}: not a request")
            return

        self.server.handle_request(packet, addr)

    def error_received(self, exc):
        logger.error(f"Listening socket error: {exc}")


class TFTPServer:
    """
    TFTP server for a served root directory.

    Usage:
        ports = LocalFilePorts()
        server = TFTPServer('/srv/tftp', ports, ports, port=6969)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, root: Union[str, Path], read_port: ReadPort,
                 write_port: Optional[WritePort] = None,
                 host: str = '0.0.0.0', port: int = TFTP_PORT,
                 policy: Optional[TransferPolicy] = None,
                 history: int = 100):
        """
        Args:
            root: Directory files are served from and written to
            read_port: Opens files for RRQ
            write_port: Opens files for WRQ; None rejects all writes
            host: Address to listen on
            port: UDP port to listen on (69 needs privileges)
            policy: Retry/timeout settings for every session
            history: How many recent TransferResults to keep
        """
        self.root = Path(root)
        self.read_port = read_port
        self.write_port = write_port
        self.host = host
        self.port = port
        self.policy = policy or TransferPolicy()

        self.transport: Optional[asyncio.DatagramTransport] = None
        self._sessions: Set[asyncio.Task] = set()
        self._running = False

        # Statistics
        self.sessions_started = 0
        self.sessions_completed = 0
        self.sessions_failed = 0
        self.bytes_sent = 0
        self.bytes_received = 0
        self.results: Deque[TransferResult] = deque(maxlen=history)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """Actual listening address (resolves port 0)."""
        if self.transport is None:
            return None
        return self.transport.get_extra_info('sockname')[:2]

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def start(self):
        """Bind the listening socket."""
        if self._running:
            return

        loop = asyncio.get_running_loop()
        self.transport, _ = await loop.create_datagram_endpoint(
            lambda: DispatchProtocol(self),
            local_addr=(self.host, self.port),
        )
        self._running = True

        logger.info(f"TFTP server listening on {self.bound_address}")
        logger.info(f"  Root: {self.root.resolve()}")
        logger.info(f"  Writes: {'enabled' if self.write_port else 'disabled'}")

    async def stop(self):
        """Close the listening socket and wait for running transfers."""
        if not self._running:
            return

        self._running = False
        self.transport.close()

        if self._sessions:
            logger.info(f"Waiting for {len(self._sessions)} transfer(s) to finish...")
            await asyncio.gather(*self._sessions, return_exceptions=True)

        logger.info(
            f"TFTP server stopped. {self.sessions_completed} transfers completed, "
            f"{self.sessions_failed} failed"
        )

    async def serve_forever(self):
        """Start and run until cancelled."""
        await self.start()
        try:
            while True:
                await asyncio.sleep(3600)
        finally:
            await self.stop()

    def handle_request(self, request: RequestPacket, addr: Tuple[str, int]):
        """Start a session for a decoded request; returns immediately."""
        if not self._running:
            return

        logger.info(
            f"{request.opcode.name} '{request.filename}' ({request.mode}) "
            f"from {addr[0]}:{addr[1]}"
        )
        self.sessions_started += 1
        task = asyncio.create_task(self._run_session(request, addr))
        self._sessions.add(task)
        task.add_done_callback(self._sessions.discard)

    async def _run_session(self, request: RequestPacket, addr: Tuple[str, int]):
        try:
            channel = await SessionChannel.open(addr, self.host)
        except OSError as e:
            self.sessions_failed += 1
            logger.error(f"Could not open transfer socket for {addr}: {e}")
            return

        session = TransferSession(
            request=request,
            channel=channel,
            root=self.root,
            read_port=self.read_port,
            write_port=self.write_port,
            policy=self.policy,
        )
        result = await session.run()
        self._record(result)

    def _record(self, result: TransferResult):
        self.results.append(result)
        if not result.ok:
            self.sessions_failed += 1
            return

        self.sessions_completed += 1
        if result.direction == Direction.READ:
            self.bytes_sent += result.bytes
        else:
            self.bytes_received += result.bytes

    def get_stats(self) -> dict:
        """Get server statistics."""
        return {
            'address': self.bound_address,
            'root': str(self.root),
            'running': self._running,
            'active_sessions': self.active_sessions,
            'sessions_started': self.sessions_started,
            'sessions_completed': self.sessions_completed,
            'sessions_failed': self.sessions_failed,
            'bytes_sent': self.bytes_sent,
            'bytes_received': self.bytes_received,
        }
