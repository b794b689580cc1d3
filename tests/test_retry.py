import asyncio

import pytest

from tftpd.errors import TransferTimeout
from tftpd.packet import AckPacket, DataPacket
from tftpd.transfer import RetryController, TransferPolicy


def test_reply_returned_without_resend(channel_factory, policy):
    async def run():
        channel = channel_factory(lambda p: [AckPacket(p.block)])
        retry = RetryController(channel, policy)
        reply = await retry.exchange(DataPacket(1, b'x').to_bytes())
        return channel, retry, reply

    channel, retry, reply = asyncio.run(run())
    assert reply == AckPacket(1).to_bytes()
    assert channel.sent == [DataPacket(1, b'x')]
    assert retry.retransmits == 0


def test_resends_on_silence(channel_factory, policy):
    seen = []

    def drop_first(packet):
        seen.append(packet)
        return [AckPacket(packet.block)] if len(seen) > 2 else []

    async def run():
        channel = channel_factory(drop_first)
        retry = RetryController(channel, policy)
        await retry.exchange(DataPacket(1, b'x').to_bytes())
        return channel, retry

    channel, retry = asyncio.run(run())
    assert channel.sent == [DataPacket(1, b'x')] * 3
    assert retry.retransmits == 2


def test_mismatched_reply_is_returned_not_retried(channel_factory, policy):
    async def run():
        channel = channel_factory(lambda p: [AckPacket(99)])
        retry = RetryController(channel, policy)
        return await retry.exchange(DataPacket(1, b'x').to_bytes()), retry

    reply, retry = asyncio.run(run())
    assert reply == AckPacket(99).to_bytes()
    assert retry.retransmits == 0


def test_timeout_after_ceiling(channel_factory):
    policy = TransferPolicy(retry_interval=0.02, timeout=0.1)

    async def run():
        channel = channel_factory()
        retry = RetryController(channel, policy)
        loop = asyncio.get_running_loop()
        start = loop.time()
        with pytest.raises(TransferTimeout):
            await retry.exchange(AckPacket(3).to_bytes())
        elapsed = loop.time() - start
        sent = len(channel.sent)
        # Nothing more goes out after the timeout
        await asyncio.sleep(0.05)
        return channel, elapsed, sent

    channel, elapsed, sent = asyncio.run(run())
    assert elapsed >= 0.09
    assert len(channel.sent) == sent
    assert 2 <= sent <= 6
    assert all(p == AckPacket(3) for p in channel.sent)


def test_already_sent_skips_first_send(channel_factory, policy):
    async def run():
        channel = channel_factory()
        channel.feed(DataPacket(1, b''))
        retry = RetryController(channel, policy)
        await retry.exchange(AckPacket(0).to_bytes(), sent=True)
        return channel

    channel = asyncio.run(run())
    assert channel.sent == []


def test_wait_returns_none_on_silence(channel_factory):
    async def run():
        retry = RetryController(channel_factory(), TransferPolicy())
        return await retry.wait(0.02), await retry.wait(0)

    assert asyncio.run(run()) == (None, None)


@pytest.mark.parametrize('kwargs', [
    {'retry_interval': 0},
    {'timeout': -1},
    {'linger': -0.5},
])
def test_policy_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        TransferPolicy(**kwargs)
