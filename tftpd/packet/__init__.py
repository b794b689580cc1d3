"""
Packet Module - TFTP Wire Format

Encodes and decodes the RRQ/WRQ, DATA, ACK and ERROR packets.
"""

from .codec import (
    TFTP_PORT,
    BLOCK_SIZE,
    MAX_DATAGRAM,
    MAX_BLOCK,
    Opcode,
    ErrorCode,
    Packet,
    RequestPacket,
    DataPacket,
    AckPacket,
    ErrorPacket,
    encode,
    decode,
    next_block,
    error_packet_for,
)

__all__ = [
    'TFTP_PORT',
    'BLOCK_SIZE',
    'MAX_DATAGRAM',
    'MAX_BLOCK',
    'Opcode',
    'ErrorCode',
    'Packet',
    'RequestPacket',
    'DataPacket',
    'AckPacket',
    'ErrorPacket',
    'encode',
    'decode',
    'next_block',
    'error_packet_for',
]
