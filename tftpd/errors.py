"""
Error Mapping

Every failure a transfer can hit is a TFTPError subclass. Each one knows
the protocol error code it maps to and whether it should be reported to
the peer in an ERROR packet before the session ends.

Taxonomy:
- MalformedPacket / UnrecognizedOpcode: datagram could not be decoded
- IllegalOperation: well-formed packet that is wrong for the current state
- ProtocolError: the peer sent us an ERROR packet
- TransferTimeout: no reply within the retry ceiling
- BlockSequenceViolation: out-of-order or mismatched block number
- IOFailure: the underlying file open/read/write failed
"""

import errno
from enum import IntEnum


class ErrorCode(IntEnum):
    """Error codes carried by ERROR packets."""
    NOT_DEFINED = 0
    FILE_NOT_FOUND = 1
    ACCESS_VIOLATION = 2
    DISK_FULL = 3
    ILLEGAL_OPERATION = 4
    UNKNOWN_TRANSFER_ID = 5
    FILE_ALREADY_EXISTS = 6
    NO_SUCH_USER = 7


_DISK_FULL_ERRNOS = (
    errno.ENOSPC, errno.EFBIG, getattr(errno, 'EDQUOT', errno.ENOSPC)
)

ERROR_DESCRIPTIONS = {
    ErrorCode.NOT_DEFINED: 'Not defined',
    ErrorCode.FILE_NOT_FOUND: 'File not found',
    ErrorCode.ACCESS_VIOLATION: 'Access violation',
    ErrorCode.DISK_FULL: 'Disk full or allocation exceeded',
    ErrorCode.ILLEGAL_OPERATION: 'Illegal TFTP operation',
    ErrorCode.UNKNOWN_TRANSFER_ID: 'Unknown transfer ID',
    ErrorCode.FILE_ALREADY_EXISTS: 'File already exists',
    ErrorCode.NO_SUCH_USER: 'No such user',
}


def describe(code: int) -> str:
    """Human-readable text for an error code."""
    try:
        return ERROR_DESCRIPTIONS[ErrorCode(code)]
    except ValueError:
        return 'Unknown error'


class TFTPError(Exception):
    """Base class for transfer failures."""

    code: int = ErrorCode.NOT_DEFINED
    # Whether the peer should get an ERROR packet for this failure
    reportable: bool = True

    @property
    def peer_message(self) -> str:
        """Message text sent to the peer."""
        return str(self)


class MalformedPacket(TFTPError):
    """Datagram could not be decoded."""
    code = ErrorCode.ILLEGAL_OPERATION


class UnrecognizedOpcode(MalformedPacket):
    """Opcode outside 1-5."""

    def __init__(self, opcode: int):
        super().__init__(f"Unrecognized opcode: {opcode}")
        self.opcode = opcode


class IllegalOperation(TFTPError):
    """Packet kind or request not valid here."""
    code = ErrorCode.ILLEGAL_OPERATION


class ProtocolError(TFTPError):
    """The peer aborted the transfer with an ERROR packet."""

    reportable = False

    def __init__(self, code: int, message: str = ''):
        self.code = code
        self.message = message
        super().__init__(
            f"Error packet received with code {code} {describe(code)}: {message}"
        )

    @classmethod
    def from_packet(cls, packet) -> 'ProtocolError':
        """Build from a decoded ErrorPacket."""
        return cls(packet.code, packet.message)


class TransferTimeout(TFTPError):
    """No reply arrived before the retry ceiling."""

    reportable = False


class BlockSequenceViolation(TFTPError):
    """A block number other than the expected one arrived."""
    code = ErrorCode.ILLEGAL_OPERATION

    def __init__(self, expected: int, received: int):
        super().__init__(
            f"Unexpected block number {received} (expected {expected})"
        )
        self.expected = expected
        self.received = received


class IOFailure(TFTPError):
    """File open, read or write failed."""

    def __init__(self, error: OSError):
        self.code = code_for_os_error(error)
        self.error = error
        super().__init__(f"{describe(self.code)}: {error}")

    @property
    def peer_message(self) -> str:
        # Local paths stay local
        return describe(self.code)


def code_for_os_error(error: OSError) -> ErrorCode:
    """Closest protocol error code for a filesystem error."""
    if isinstance(error, (FileNotFoundError, NotADirectoryError)):
        return ErrorCode.FILE_NOT_FOUND
    if isinstance(error, FileExistsError):
        return ErrorCode.FILE_ALREADY_EXISTS
    if isinstance(error, (PermissionError, IsADirectoryError)):
        return ErrorCode.ACCESS_VIOLATION
    if error.errno in _DISK_FULL_ERRNOS:
        return ErrorCode.DISK_FULL
    return ErrorCode.NOT_DEFINED
