import asyncio
import logging

import pytest

from plushpal.bot.mailbox import ControllerEvent, EventKind, Mailbox
from plushpal.config.constants import LOGGER_NAME


@pytest.mark.asyncio
async def test_events_delivered_in_order():
    mailbox = Mailbox()
    mailbox.post(ControllerEvent(EventKind.CHANNEL_MESSAGE, "first"))
    mailbox.post(ControllerEvent(EventKind.INBOUND_TRACK, "second"))
    mailbox.post(ControllerEvent(EventKind.CHANNEL_CLOSED))

    received = [await mailbox.get() for _ in range(3)]

    assert [e.payload for e in received] == ["first", "second", None]
    assert received[2].kind is EventKind.CHANNEL_CLOSED


@pytest.mark.asyncio
async def test_full_mailbox_rejects_and_logs(caplog):
    caplog.set_level(logging.ERROR, logger=LOGGER_NAME)
    mailbox = Mailbox(maxsize=1)

    assert mailbox.post(ControllerEvent(EventKind.CHANNEL_MESSAGE, 1))
    assert not mailbox.post(ControllerEvent(EventKind.CHANNEL_MESSAGE, 2))

    assert mailbox.qsize() == 1
    assert "mailbox full" in caplog.text


@pytest.mark.asyncio
async def test_clear():
    mailbox = Mailbox()
    for i in range(3):
        mailbox.post(ControllerEvent(EventKind.CHANNEL_MESSAGE, i))

    assert mailbox.clear() == 3
    assert mailbox.qsize() == 0


@pytest.mark.asyncio
async def test_put_waits_for_space():
    """put() blocks while full and delivers once the consumer catches up"""
    mailbox = Mailbox(maxsize=1)
    await mailbox.put(ControllerEvent(EventKind.CHANNEL_MESSAGE, "first"))

    pending = asyncio.create_task(mailbox.put(ControllerEvent(EventKind.CHANNEL_MESSAGE, "second")))
    await asyncio.sleep(0)
    assert not pending.done()

    assert (await mailbox.get()).payload == "first"
    await asyncio.wait_for(pending, timeout=1)
    assert (await mailbox.get()).payload == "second"
