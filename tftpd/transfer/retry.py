"""
Retry Controller

Wraps "send a packet, wait for the peer's answer" with a fixed
retransmission interval and an outer timeout ceiling:

    send
    wait retry_interval  -> datagram arrived? return it
    resend, wait again   -> ...
    ceiling reached      -> TransferTimeout, nothing more is sent

Only silence triggers a resend. A datagram with the wrong content is
returned to the caller, which decides what it means.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import TransferTimeout
from .channel import Channel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferPolicy:
    """Timing for one transfer session (seconds)."""
    retry_interval: float = 3.0
    timeout: float = 30.0
    # Wait after the final ACK of a write for a retransmitted last block
    linger: float = 3.0

    def __post_init__(self):
        if self.retry_interval <= 0 or self.timeout <= 0:
            raise ValueError("retry_interval and timeout must be positive")
        if self.linger < 0:
            raise ValueError("linger must not be negative")


class RetryController:
    """Send/await with bounded retransmission over one channel."""

    def __init__(self, channel: Channel, policy: TransferPolicy):
        self.channel = channel
        self.policy = policy
        self.retransmits = 0

    async def exchange(self, datagram: bytes, sent: bool = False) -> bytes:
        """
        Send `datagram` and return the next datagram from the peer.

        Args:
            datagram: Encoded packet to (re)send
            sent: The first copy already went out; only resend on silence

        Raises:
            TransferTimeout: nothing arrived within policy.timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.policy.timeout

        if not sent:
            self.channel.send(datagram)

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TransferTimeout(
                    f"No response from {self.channel.peer} "
                    f"after {self.policy.timeout:g}s"
                )
            try:
                return await self.channel.receive(
                    min(self.policy.retry_interval, remaining)
                )
            except asyncio.TimeoutError:
                if loop.time() >= deadline:
                    continue
                self.retransmits += 1
                logger.debug(f"Retransmit #{self.retransmits} to {self.channel.peer}")
                self.channel.send(datagram)

    async def wait(self, window: float) -> Optional[bytes]:
        """Next datagram within `window` seconds, or None. Sends nothing."""
        if window <= 0:
            return None
        try:
            return await self.channel.receive(window)
        except asyncio.TimeoutError:
            return None
