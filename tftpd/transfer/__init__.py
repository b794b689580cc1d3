"""
Transfer Module - Per-Client TFTP Sessions

Handles the lock-step read/write state machines, retransmission and
the dedicated UDP channel each transfer runs on.
"""

from .channel import Channel, SessionChannel
from .retry import RetryController, TransferPolicy
from .session import (
    Direction,
    TransferResult,
    TransferSession,
    TransferState,
)

__all__ = [
    'Channel',
    'SessionChannel',
    'RetryController',
    'TransferPolicy',
    'Direction',
    'TransferResult',
    'TransferSession',
    'TransferState',
]
