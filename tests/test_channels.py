import queue
import threading

import pytest

from so101_teleop.core.channels import LogChannel, StateMailbox


def test_mailbox_put_never_blocks_and_keeps_latest():
    mailbox = StateMailbox()

    for i in range(100):
        mailbox.put(i)

    assert mailbox.replaced == 99
    assert mailbox.get_nowait() == 99
    assert mailbox.empty()


def test_mailbox_put_reports_eviction():
    mailbox = StateMailbox()
    assert mailbox.put("a") is False
    assert mailbox.put("b") is True


def test_mailbox_get_times_out():
    with pytest.raises(queue.Empty):
        StateMailbox().get(timeout=0.01)
    with pytest.raises(queue.Empty):
        StateMailbox().get_nowait()


def test_mailbox_get_wakes_on_put_from_another_thread():
    mailbox = StateMailbox()
    timer = threading.Timer(0.02, mailbox.put, args=("ready",))
    timer.start()
    try:
        assert mailbox.get(timeout=2.0) == "ready"
    finally:
        timer.cancel()


def test_log_channel_drops_when_full():
    channel = LogChannel(maxsize=10)

    results = [channel.publish(f"line {i}") for i in range(15)]

    assert results.count(True) == 10
    assert channel.dropped == 5
    assert channel.qsize() == 10
    # Oldest lines are kept, newest dropped
    assert channel.drain() == [f"line {i}" for i in range(10)]
    assert channel.qsize() == 0


def test_log_channel_get():
    channel = LogChannel(maxsize=2)
    channel.publish("hello")
    assert channel.get(timeout=0.1) == "hello"
    with pytest.raises(queue.Empty):
        channel.get(timeout=0.01)
