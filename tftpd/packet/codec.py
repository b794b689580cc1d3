"""
TFTP Packet Codec

Design Decision: Packet Representation
======================================

Options Considered:
1. One Packet class with optional fields per kind
   - Easy to construct
   - Nothing stops a DATA packet from carrying a filename

2. A dict keyed by field name
   - Flexible, no type safety

3. One frozen dataclass per packet kind
   - Closed set of kinds, each with only its own fields
   - Callers dispatch with isinstance()

Decision: One frozen dataclass per kind
- RequestPacket, DataPacket, AckPacket, ErrorPacket
- Packet is the Union of the four
- encode()/decode() are pure module functions

Wire Format (big-endian, RFC 1350):
```
RRQ/WRQ  | opcode (2) | filename | 0 | mode | 0 |
DATA     | opcode (2) | block (2) | payload (0..512) |
ACK      | opcode (2) | block (2) |
ERROR    | opcode (2) | code (2) | message | 0 |
```
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from ..errors import (
    ErrorCode, MalformedPacket, UnrecognizedOpcode, TFTPError, describe
)

TFTP_PORT = 69
BLOCK_SIZE = 512
MAX_DATAGRAM = BLOCK_SIZE + 4
MAX_BLOCK = 0xFFFF

# Text fields are bytes on the wire; latin-1 maps every byte to one char
TEXT_ENCODING = 'latin-1'

_HEADER = struct.Struct('>HH')
_OPCODE = struct.Struct('>H')


class Opcode(IntEnum):
    """Packet opcodes."""
    RRQ = 1
    WRQ = 2
    DATA = 3
    ACK = 4
    ERROR = 5


def next_block(block: int) -> int:
    """Block number following `block`, wrapping at 65536."""
    return (block + 1) & MAX_BLOCK


def _check_uint16(name: str, value: int):
    if not 0 <= value <= MAX_BLOCK:
        raise ValueError(f"{name} out of range: {value}")


def _encode_text(name: str, value: str) -> bytes:
    raw = value.encode(TEXT_ENCODING)
    if b'\x00' in raw:
        raise ValueError(f"{name} must not contain NUL")
    return raw


@dataclass(frozen=True)
class RequestPacket:
    """Read (RRQ) or write (WRQ) request."""
    opcode: Opcode
    filename: str
    mode: str = 'octet'

    @property
    def is_read(self) -> bool:
        return self.opcode == Opcode.RRQ

    def to_bytes(self) -> bytes:
        if self.opcode not in (Opcode.RRQ, Opcode.WRQ):
            raise ValueError(f"Not a request opcode: {self.opcode}")
        return (
            _OPCODE.pack(self.opcode) +
            _encode_text('filename', self.filename) + b'\x00' +
            _encode_text('mode', self.mode) + b'\x00'
        )


@dataclass(frozen=True)
class DataPacket:
    """One block of file payload."""
    block: int
    payload: bytes = b''

    @property
    def opcode(self) -> Opcode:
        return Opcode.DATA

    @property
    def is_final(self) -> bool:
        """A payload shorter than BLOCK_SIZE ends the transfer."""
        return len(self.payload) < BLOCK_SIZE

    def to_bytes(self) -> bytes:
        _check_uint16('block', self.block)
        if len(self.payload) > BLOCK_SIZE:
            raise ValueError(f"Payload too large: {len(self.payload)} bytes")
        return _HEADER.pack(Opcode.DATA, self.block) + bytes(self.payload)


@dataclass(frozen=True)
class AckPacket:
    """Acknowledgment of one block (block 0 acknowledges a request)."""
    block: int

    @property
    def opcode(self) -> Opcode:
        return Opcode.ACK

    def to_bytes(self) -> bytes:
        _check_uint16('block', self.block)
        return _HEADER.pack(Opcode.ACK, self.block)


@dataclass(frozen=True)
class ErrorPacket:
    """Terminates a transfer with an error code and message."""
    code: int
    message: str = ''

    @property
    def opcode(self) -> Opcode:
        return Opcode.ERROR

    def to_bytes(self) -> bytes:
        _check_uint16('code', self.code)
        return (
            _HEADER.pack(Opcode.ERROR, self.code) +
            _encode_text('message', self.message) + b'\x00'
        )


Packet = Union[RequestPacket, DataPacket, AckPacket, ErrorPacket]


def error_packet_for(error: BaseException) -> Optional[ErrorPacket]:
    """
    ERROR packet reporting a local failure to the peer.

    Returns None for failures the peer must not be told about
    (timeouts, and errors the peer itself sent).
    """
    if isinstance(error, TFTPError):
        if not error.reportable:
            return None
        return ErrorPacket(code=int(error.code), message=error.peer_message)
    return ErrorPacket(
        code=ErrorCode.NOT_DEFINED,
        message=describe(ErrorCode.NOT_DEFINED),
    )


def encode(packet: Packet) -> bytes:
    """Serialize a packet to its wire form."""
    return packet.to_bytes()


def decode(data: bytes) -> Packet:
    """
    Parse a datagram into a packet.

    Raises:
        UnrecognizedOpcode: opcode is not 1-5
        MalformedPacket: buffer too short or fields cannot be extracted
    """
    if len(data) < 4:
        raise MalformedPacket(f"Packet too short: {len(data)} bytes")

    raw_opcode = _OPCODE.unpack_from(data)[0]
    try:
        opcode = Opcode(raw_opcode)
    except ValueError:
        raise UnrecognizedOpcode(raw_opcode) from None

    if opcode in (Opcode.RRQ, Opcode.WRQ):
        return _decode_request(opcode, data)

    _, field = _HEADER.unpack_from(data)

    if opcode == Opcode.DATA:
        payload = bytes(data[4:])
        if len(payload) > BLOCK_SIZE:
            raise MalformedPacket(f"Data payload too large: {len(payload)} bytes")
        return DataPacket(block=field, payload=payload)

    if opcode == Opcode.ACK:
        return AckPacket(block=field)

    # Opcode.ERROR
    if len(data) < 5:
        raise MalformedPacket("Error packet missing message")
    message = bytes(data[4:]).split(b'\x00', 1)[0]
    return ErrorPacket(code=field, message=message.decode(TEXT_ENCODING))


def _decode_request(opcode: Opcode, data: bytes) -> RequestPacket:
    fields = bytes(data[2:]).split(b'\x00')
    # Two terminated strings leave at least three pieces
    if len(fields) < 3:
        raise MalformedPacket("Request is missing a NUL terminator")
    filename, mode = fields[0], fields[1]
    return RequestPacket(
        opcode=opcode,
        filename=filename.decode(TEXT_ENCODING),
        mode=mode.decode(TEXT_ENCODING),
    )
