import asyncio
from typing import Callable, List, Optional

import pytest

from tftpd.packet import decode
from tftpd.transfer import TransferPolicy

# Small timings keep the suite fast; retry < linger < timeout
FAST_POLICY = TransferPolicy(retry_interval=0.05, timeout=0.5, linger=0.1)


class ScriptedChannel:
    """
    In-memory Channel whose peer is a Python callable.

    Every datagram the session sends is decoded and recorded in `sent`,
    then handed to `responder`, which returns the packets (or raw bytes)
    the peer answers with.
    """

    def __init__(self, responder: Optional[Callable] = None,
                 peer=('127.0.0.1', 50000)):
        self.peer = peer
        self.responder = responder
        self.sent: List = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, packet):
        data = packet if isinstance(packet, (bytes, bytearray)) else packet.to_bytes()
        self._incoming.put_nowait(bytes(data))

    def send(self, data: bytes):
        if self.closed:
            raise ConnectionError("Channel closed")
        packet = decode(data)
        self.sent.append(packet)
        if self.responder:
            for reply in self.responder(packet) or []:
                self.feed(reply)

    async def receive(self, timeout: float) -> bytes:
        return await asyncio.wait_for(self._incoming.get(), timeout=timeout)

    def close(self):
        self.closed = True


class UDPClient(asyncio.DatagramProtocol):
    """Minimal TFTP client socket for end-to-end tests."""

    def __init__(self):
        self.transport = None
        self.queue: asyncio.Queue = asyncio.Queue()

    @classmethod
    async def open(cls) -> 'UDPClient':
        loop = asyncio.get_running_loop()
        _, protocol = await loop.create_datagram_endpoint(
            cls, local_addr=('127.0.0.1', 0)
        )
        return protocol

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.queue.put_nowait((data, addr))

    def send(self, packet, addr):
        data = packet if isinstance(packet, bytes) else packet.to_bytes()
        self.transport.sendto(data, addr)

    async def receive(self, timeout: float = 2.0):
        data, addr = await asyncio.wait_for(self.queue.get(), timeout=timeout)
        return decode(data), addr

    def close(self):
        self.transport.close()


@pytest.fixture
def policy():
    return FAST_POLICY


@pytest.fixture
def channel_factory():
    return ScriptedChannel


@pytest.fixture
def udp_client_factory():
    return UDPClient
