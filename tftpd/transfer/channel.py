"""
Session Datagram Channel

Each transfer gets its own UDP socket bound to an OS-assigned port and
connected to the client. The (client address, server port) pair is the
transfer identifier: the kernel drops datagrams from any other source,
so the session only ever sees its own peer.

Design Note: asyncio's DatagramProtocol delivers datagrams through a
callback. The channel pushes them onto a queue so the session can await
"the next datagram, or nothing within N seconds" as a plain coroutine.
"""

import asyncio
import logging
from typing import Optional, Protocol, Tuple

from ..packet import MAX_DATAGRAM

logger = logging.getLogger(__name__)

Address = Tuple[str, int]


class Channel(Protocol):
    """What a transfer session needs from its transport."""

    peer: Address

    def send(self, data: bytes) -> None: ...

    async def receive(self, timeout: float) -> bytes: ...

    def close(self) -> None: ...


class SessionChannel(asyncio.DatagramProtocol):
    """
    Connected UDP endpoint for one transfer.

    receive() raises asyncio.TimeoutError when nothing arrives in time.
    """

    def __init__(self, peer: Address):
        self.peer = peer
        self.transport: Optional[asyncio.DatagramTransport] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @classmethod
    async def open(cls, peer: Address, host: str = '0.0.0.0') -> 'SessionChannel':
        """Bind an ephemeral port on `host` and connect it to `peer`."""
        loop = asyncio.get_running_loop()
        _, protocol = await loop.create_datagram_endpoint(
            lambda: cls(peer),
            local_addr=(host, 0),
            remote_addr=peer[:2],
        )
        return protocol

    @property
    def local_address(self) -> Optional[Address]:
        if self.transport is None:
            return None
        return self.transport.get_extra_info('sockname')

    def connection_made(self, transport: asyncio.DatagramTransport):
        self.transport = transport
        logger.debug(f"Transfer channel {self.local_address} -> {self.peer}")

    def connection_lost(self, exc):
        self._closed = True

    def datagram_received(self, data: bytes, addr: Address):
        if len(data) > MAX_DATAGRAM:
            logger.debug(f"Dropping oversized datagram ({len(data)} bytes) from {addr}")
            return
        self._queue.put_nowait(data)

    def error_received(self, exc):
        # ICMP port unreachable and friends; the retry timer handles them
        logger.debug(f"Transfer channel error from {self.peer}: {exc}")

    def send(self, data: bytes):
        if self._closed or self.transport is None:
            raise ConnectionError("Channel closed")
        self.transport.sendto(data)

    async def receive(self, timeout: float) -> bytes:
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def close(self):
        if not self._closed and self.transport is not None:
            self._closed = True
            self.transport.close()
