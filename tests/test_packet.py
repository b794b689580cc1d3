import struct

import pytest

from tftpd.errors import (
    ErrorCode, IOFailure, MalformedPacket, ProtocolError, TransferTimeout,
    UnrecognizedOpcode, BlockSequenceViolation,
)
from tftpd.packet import (
    BLOCK_SIZE, MAX_BLOCK, Opcode, RequestPacket, DataPacket, AckPacket,
    ErrorPacket, encode, decode, next_block, error_packet_for,
)


@pytest.mark.parametrize('packet', [
    RequestPacket(Opcode.RRQ, 'testfile.txt', 'octet'),
    RequestPacket(Opcode.WRQ, 'dir/testfile.txt', 'netascii'),
    RequestPacket(Opcode.RRQ, '', ''),
    DataPacket(48, b'Testing a Data packet'),
    DataPacket(1, b''),
    DataPacket(MAX_BLOCK, b'\xff' * BLOCK_SIZE),
    AckPacket(0),
    AckPacket(MAX_BLOCK),
    ErrorPacket(ErrorCode.FILE_NOT_FOUND, 'File not found'),
    ErrorPacket(ErrorCode.NOT_DEFINED, ''),
])
def test_roundtrip(packet):
    assert decode(encode(packet)) == packet


def test_request_layout():
    raw = encode(RequestPacket(Opcode.RRQ, 'a.txt', 'octet'))
    assert raw == b'\x00\x01a.txt\x00octet\x00'


def test_data_layout():
    raw = encode(DataPacket(0x0102, b'xyz'))
    assert raw == b'\x00\x03\x01\x02xyz'


def test_ack_layout():
    assert encode(AckPacket(7)) == b'\x00\x04\x00\x07'


def test_error_layout():
    raw = encode(ErrorPacket(ErrorCode.DISK_FULL, 'full'))
    assert raw == b'\x00\x05\x00\x03full\x00'


def test_decoded_request_has_opcode_enum():
    packet = decode(b'\x00\x02b.txt\x00octet\x00')
    assert isinstance(packet, RequestPacket)
    assert packet.opcode is Opcode.WRQ
    assert not packet.is_read


@pytest.mark.parametrize('raw', [b'', b'\x00', b'\x00\x04\x00'])
def test_decode_rejects_short_buffers(raw):
    with pytest.raises(MalformedPacket):
        decode(raw)


@pytest.mark.parametrize('opcode', [0, 6, 0xFFFF])
def test_decode_rejects_unknown_opcode(opcode):
    with pytest.raises(UnrecognizedOpcode) as exc_info:
        decode(struct.pack('>HH', opcode, 1))
    assert exc_info.value.opcode == opcode


def test_unknown_opcode_is_malformed():
    with pytest.raises(MalformedPacket):
        decode(b'\x00\x09\x00\x00')


def test_decode_rejects_request_missing_second_terminator():
    with pytest.raises(MalformedPacket):
        decode(b'\x00\x01a.txt\x00octet')


def test_decode_rejects_request_without_terminators():
    with pytest.raises(MalformedPacket):
        decode(b'\x00\x01a.txt')


def test_decode_rejects_short_error():
    with pytest.raises(MalformedPacket):
        decode(b'\x00\x05\x00\x01')


def test_decode_rejects_oversized_data():
    with pytest.raises(MalformedPacket):
        decode(b'\x00\x03\x00\x01' + b'x' * (BLOCK_SIZE + 1))


def test_error_without_terminator_keeps_message():
    packet = decode(b'\x00\x05\x00\x02denied')
    assert packet == ErrorPacket(ErrorCode.ACCESS_VIOLATION, 'denied')


def test_data_is_final_below_block_size():
    assert DataPacket(1, b'x' * 511).is_final
    assert DataPacket(1, b'').is_final
    assert not DataPacket(1, b'x' * BLOCK_SIZE).is_final


@pytest.mark.parametrize('packet', [
    DataPacket(MAX_BLOCK + 1, b''),
    DataPacket(-1, b''),
    DataPacket(1, b'x' * (BLOCK_SIZE + 1)),
    AckPacket(70000),
    ErrorPacket(70000, ''),
    RequestPacket(Opcode.RRQ, 'a\x00b', 'octet'),
    RequestPacket(Opcode.DATA, 'a', 'octet'),
])
def test_encode_rejects_invalid_fields(packet):
    with pytest.raises(ValueError):
        encode(packet)


def test_next_block_wraps():
    assert next_block(1) == 2
    assert next_block(MAX_BLOCK) == 0


def test_error_packet_for_reportable_failures():
    packet = error_packet_for(BlockSequenceViolation(3, 5))
    assert packet.code == ErrorCode.ILLEGAL_OPERATION
    assert '5' in packet.message

    packet = error_packet_for(IOFailure(FileNotFoundError(2, 'No such file', '/srv/a')))
    assert packet == ErrorPacket(ErrorCode.FILE_NOT_FOUND, 'File not found')


def test_error_packet_for_silent_failures():
    assert error_packet_for(TransferTimeout('gone')) is None
    assert error_packet_for(ProtocolError(ErrorCode.DISK_FULL, 'full')) is None


def test_error_packet_for_unexpected_exception():
    packet = error_packet_for(RuntimeError('boom'))
    assert packet.code == ErrorCode.NOT_DEFINED
    assert 'boom' not in packet.message
