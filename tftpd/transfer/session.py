"""
Transfer Session

Design Decision: One Task per Transfer
======================================

Options Considered:
1. Single socket, demultiplex every client in the dispatcher
   - One port to manage
   - All transfer state lives in shared tables

2. Thread per transfer
   - Familiar blocking code
   - Threads are heavy for many short transfers

3. asyncio task per transfer with its own socket
   - Each session owns its channel, file handle and counters
   - Nothing is shared, so nothing needs locking

Decision: asyncio task per transfer
- The dispatcher creates a SessionChannel (new ephemeral port) and a
  TransferSession, then forgets about them
- run() never raises for transfer failures; it returns a TransferResult

Read transfer (RRQ):
```
server                        client
  ACK 0        ------------>
  DATA 1       ------------>
               <------------  ACK 1
  DATA n (<512)------------>
               <------------  ACK n      -> DONE
```

Write transfer (WRQ):
```
  ACK 0        ------------>
               <------------  DATA 1
  ACK 1        ------------>
               <------------  DATA n (<512)
  (file closed)
  ACK n        ------------>
  (linger: a repeated DATA n gets ACK n again)   -> DONE
```
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..errors import (
    TFTPError, IllegalOperation, ProtocolError, BlockSequenceViolation,
    IOFailure, MalformedPacket,
)
from ..packet import (
    BLOCK_SIZE, Opcode, RequestPacket, DataPacket, AckPacket, ErrorPacket,
    decode, next_block, error_packet_for,
)
from ..storage import ByteSink, ByteSource, ReadPort, WritePort, resolve_path
from .channel import Channel
from .retry import RetryController, TransferPolicy

logger = logging.getLogger(__name__)

# Modes accepted in requests; both are transferred as raw octets
SUPPORTED_MODES = ('octet', 'netascii')


class Direction(Enum):
    READ = 'read'
    WRITE = 'write'


class TransferState(Enum):
    PENDING = 'pending'
    SENDING = 'sending'
    RECEIVING = 'receiving'
    DONE = 'done'
    ABORTED = 'aborted'


@dataclass
class TransferResult:
    """Outcome of one transfer session."""
    direction: Direction
    filename: str
    peer: tuple
    state: TransferState
    blocks: int = 0
    bytes: int = 0
    retransmits: int = 0
    duplicates: int = 0
    duration: float = 0.0
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.state == TransferState.DONE

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'direction': self.direction.value,
            'filename': self.filename,
            'peer': f"{self.peer[0]}:{self.peer[1]}",
            'state': self.state.value,
            'blocks': self.blocks,
            'bytes': self.bytes,
            'retransmits': self.retransmits,
            'duplicates': self.duplicates,
            'duration': self.duration,
            'error': self.error,
        }


class TransferSession:
    """
    Runs one RRQ or WRQ to completion over a dedicated channel.

    The session owns `channel` and closes it when run() returns.
    """

    def __init__(self, request: RequestPacket, channel: Channel,
                 root: Union[str, Path], read_port: ReadPort,
                 write_port: Optional[WritePort] = None,
                 policy: Optional[TransferPolicy] = None):
        """
        Args:
            request: The decoded RRQ/WRQ that started this transfer
            channel: Transport connected to the requesting client
            root: Served root directory
            read_port: Opens files for RRQ
            write_port: Opens files for WRQ; None makes the server read-only
            policy: Retry/timeout settings
        """
        self.request = request
        self.channel = channel
        self.root = root
        self.read_port = read_port
        self.write_port = write_port
        self.policy = policy or TransferPolicy()
        self.retry = RetryController(channel, self.policy)

        self.state = TransferState.PENDING
        self.block = 0
        self.blocks = 0
        self.bytes = 0
        self.duplicates = 0

    @property
    def peer(self) -> tuple:
        return self.channel.peer

    @property
    def direction(self) -> Direction:
        return Direction.READ if self.request.opcode == Opcode.RRQ else Direction.WRITE

    async def run(self) -> TransferResult:
        """Acknowledge the request and run the transfer. Never raises TFTPError."""
        start = time.monotonic()
        error: Optional[BaseException] = None

        try:
            # ACK 0 acknowledges the request from our new port (the TID)
            self.channel.send(AckPacket(0).to_bytes())

            if self.request.opcode == Opcode.RRQ:
                self._check_mode()
                self.state = TransferState.SENDING
                await self._run_read()
            elif self.request.opcode == Opcode.WRQ:
                self._check_mode()
                self.state = TransferState.RECEIVING
                await self._run_write()
            else:
                raise IllegalOperation(f"Not a request: opcode {self.request.opcode}")

            self.state = TransferState.DONE

        except TFTPError as e:
            error = e
            self._abort(e)
            logger.warning(
                f"{self.direction.value.upper()} '{self.request.filename}' "
                f"for {self._peer_str()} aborted: {e}"
            )
        except Exception as e:
            error = e
            logger.exception(f"Unexpected error in transfer for {self._peer_str()}")
            self._abort(e)
        finally:
            self.channel.close()

        result = TransferResult(
            direction=self.direction,
            filename=self.request.filename,
            peer=self.peer,
            state=self.state,
            blocks=self.blocks,
            bytes=self.bytes,
            retransmits=self.retry.retransmits,
            duplicates=self.duplicates,
            duration=time.monotonic() - start,
            error=str(error) if error else None,
            exception=error,
        )

        if result.ok:
            logger.info(
                f"{self.direction.value.upper()} '{self.request.filename}' "
                f"for {self._peer_str()} complete: {result.bytes:,} bytes, "
                f"{result.blocks} blocks, {result.retransmits} retransmits, "
                f"{result.duration:.2f}s"
            )
        return result

    def _abort(self, error: BaseException):
        self.state = TransferState.ABORTED
        packet = error_packet_for(error)
        if packet is None:
            return
        try:
            self.channel.send(packet.to_bytes())
        except ConnectionError:
            logger.debug(f"Could not report error to {self._peer_str()}")

    def _check_mode(self):
        mode = self.request.mode.lower()
        if mode not in SUPPORTED_MODES:
            raise IllegalOperation(f"Unsupported transfer mode: {self.request.mode!r}")
        if mode != 'octet':
            logger.info(f"Serving '{self.request.filename}' in {mode} mode as raw octets")

    def _peer_str(self) -> str:
        return f"{self.peer[0]}:{self.peer[1]}"

    # === Read (RRQ) ===

    async def _run_read(self):
        source = await self._open_source()
        try:
            await self._send_blocks(source)
        except BaseException:
            await self._close(source, quiet=True)
            raise
        await self._close(source)

    async def _send_blocks(self, source: ByteSource):
        self.block = 1
        while True:
            payload = await self._read_block(source)
            data = DataPacket(block=self.block, payload=payload)

            reply = decode(await self.retry.exchange(data.to_bytes()))
            if isinstance(reply, ErrorPacket):
                raise ProtocolError.from_packet(reply)
            if not isinstance(reply, AckPacket):
                raise IllegalOperation(f"Expected ACK, got {reply.opcode.name}")
            if reply.block != self.block:
                raise BlockSequenceViolation(self.block, reply.block)

            self.blocks += 1
            self.bytes += len(payload)
            logger.debug(f"ACK {self.block} from {self._peer_str()}")

            if data.is_final:
                return
            self.block = next_block(self.block)

    async def _open_source(self) -> ByteSource:
        try:
            path = resolve_path(self.root, self.request.filename)
            return await self.read_port.open_for_read(path)
        except OSError as e:
            raise IOFailure(e) from e

    async def _read_block(self, source: ByteSource) -> bytes:
        """Read a full block; anything shorter means end of file."""
        chunk = bytearray()
        try:
            while len(chunk) < BLOCK_SIZE:
                part = await source.read(BLOCK_SIZE - len(chunk))
                if not part:
                    break
                chunk.extend(part)
        except OSError as e:
            raise IOFailure(e) from e
        return bytes(chunk)

    # === Write (WRQ) ===

    async def _run_write(self):
        sink = await self._open_sink()
        try:
            ack = await self._receive_blocks(sink)
        except BaseException:
            await self._close(sink, quiet=True)
            raise
        # The file is complete on disk before the final ACK goes out
        await self._close(sink)
        self.channel.send(ack)
        await self._linger(ack)

    async def _receive_blocks(self, sink: ByteSink) -> bytes:
        """Store DATA blocks until the final one; returns its unsent ACK."""
        ack = AckPacket(0).to_bytes()
        # ACK 0 went out in run(); only resend it on silence
        sent = True
        while True:
            packet = decode(await self.retry.exchange(ack, sent=sent))
            sent = False

            if isinstance(packet, ErrorPacket):
                raise ProtocolError.from_packet(packet)
            if not isinstance(packet, DataPacket):
                raise IllegalOperation(f"Expected DATA, got {packet.opcode.name}")

            if packet.block == self.block:
                # Our ACK was lost; the loop resends it
                self.duplicates += 1
                logger.debug(f"Duplicate DATA {packet.block} from {self._peer_str()}")
                continue

            expected = next_block(self.block)
            if packet.block != expected:
                raise BlockSequenceViolation(expected, packet.block)

            await self._write_block(sink, packet.payload)
            self.block = packet.block
            self.blocks += 1
            self.bytes += len(packet.payload)
            ack = AckPacket(self.block).to_bytes()
            logger.debug(f"DATA {self.block} ({len(packet.payload)} bytes) from {self._peer_str()}")

            if packet.is_final:
                return ack

    async def _open_sink(self) -> ByteSink:
        try:
            if self.write_port is None:
                raise PermissionError("Server is read-only")
            path = resolve_path(self.root, self.request.filename)
            return await self.write_port.open_for_write(path)
        except OSError as e:
            raise IOFailure(e) from e

    async def _write_block(self, sink: ByteSink, payload: bytes):
        if not payload:
            return
        try:
            await sink.write(payload)
        except OSError as e:
            raise IOFailure(e) from e

    async def _linger(self, ack: bytes):
        """
        Keep answering a retransmitted final DATA until the peer goes quiet.

        Bounded by policy.timeout overall so a misbehaving peer cannot hold
        the session open.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.policy.timeout
        while True:
            window = min(self.policy.linger, deadline - loop.time())
            datagram = await self.retry.wait(window)
            if datagram is None:
                return
            try:
                packet = decode(datagram)
            except MalformedPacket:
                logger.debug(f"Ignoring malformed datagram from {self._peer_str()} after final ACK")
                continue
            if isinstance(packet, DataPacket) and packet.block == self.block:
                self.duplicates += 1
                logger.debug(f"Final DATA {self.block} repeated; resending ACK")
                self.channel.send(ack)
            else:
                logger.debug(f"Ignoring {packet.opcode.name} from {self._peer_str()} after final ACK")

    async def _close(self, handle, quiet: bool = False):
        try:
            await handle.close()
        except OSError as e:
            if not quiet:
                raise IOFailure(e) from e
            # Another error is already ending the transfer
            logger.warning(f"Closing '{self.request.filename}' failed: {e}")
