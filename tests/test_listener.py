"""Live listener: filter lifecycle, benign errors and error counting."""

import asyncio

from structlog.testing import capture_logs

from conftest import FakeEventSource, prediction_placed
from oraclex.ingestion.listener import LiveListener, is_benign_error


async def _run_until_drained(listener: LiveListener, source: FakeEventSource) -> None:
    stop = asyncio.Event()
    task = asyncio.create_task(listener.run(stop))
    for _ in range(500):
        if not source.filter_batches:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.05)
    stop.set()
    await task


def test_is_benign_error():
    assert is_benign_error(ValueError("{'code': -32000, 'message': 'filter not found'}"))
    assert is_benign_error(RuntimeError("Filter Not Found"))
    assert not is_benign_error(RuntimeError("connection reset by peer"))


def test_listener_hands_events_to_sink_in_order():
    source = FakeEventSource()
    source.filter_batches = [[prediction_placed(7, block=12, tx="0x02"), prediction_placed(7, block=11, tx="0x01")]]
    received = []

    async def sink(event):
        received.append(event)

    listener = LiveListener(source, sink, poll_interval_sec=0.001, from_block=10)
    asyncio.run(_run_until_drained(listener, source))
    assert [e.meta.block_number for e in received] == [11, 12]
    assert listener.event_count == 2
    assert listener.last_block == 12
    assert source.filters_created == [10]


def test_benign_error_recreates_filter_without_counting():
    source = FakeEventSource(head=110)
    source.filter_batches = [
        ValueError("filter not found"),
        [prediction_placed(7, block=120)],
    ]
    received = []

    async def sink(event):
        received.append(event)

    listener = LiveListener(source, sink, poll_interval_sec=0.001, from_block=100)
    with capture_logs() as logs:
        asyncio.run(_run_until_drained(listener, source))
    assert listener.error_count == 0
    assert not any(e["event"] == "listener_error" for e in logs)
    # The replacement resumes from the head reached by the first install.
    assert source.filters_created == [100, 110]
    assert len(received) == 1


def test_other_errors_are_counted_and_polling_continues():
    source = FakeEventSource(head=110)
    source.filter_batches = [
        [prediction_placed(7, block=120, tx="0x01")],
        RuntimeError("connection reset by peer"),
        [prediction_placed(7, block=121, tx="0x02")],
    ]
    received = []

    async def sink(event):
        received.append(event)

    listener = LiveListener(source, sink, poll_interval_sec=0.001, from_block=100)
    with capture_logs() as logs:
        asyncio.run(_run_until_drained(listener, source))
    assert listener.error_count == 1
    assert [e["event"] for e in logs if e["log_level"] == "error"] == ["listener_error"]
    # The replacement filter resumes from the last block seen.
    assert source.filters_created == [100, 120]
    assert [e.meta.block_number for e in received] == [120, 121]


def test_filter_is_uninstalled_on_stop():
    source = FakeEventSource()
    source.filter_batches = [[]]

    async def sink(event):
        pass

    listener = LiveListener(source, sink, poll_interval_sec=0.001)
    asyncio.run(_run_until_drained(listener, source))
    assert source.filters_created == [None]
    assert source.filters_uninstalled == ["0xfilter1"]


def test_recreated_filter_catches_up_on_missed_blocks():
    # A node only reports logs mined after a filter is installed, so the
    # event at block 150 (mined while no filter existed) must come from get_logs.
    source = FakeEventSource([prediction_placed(7, block=150)], heads=[100, 200])
    source.filter_batches = [ValueError("filter not found")]
    received = []

    async def sink(event):
        received.append(event)

    listener = LiveListener(source, sink, poll_interval_sec=0.001)
    asyncio.run(_run_until_drained(listener, source))
    assert source.filters_created == [None, 100]
    assert source.log_queries == [(100, 200)]
    assert [e.meta.block_number for e in received] == [150]
    assert listener.error_count == 0


def test_first_filter_catches_up_from_start_block():
    source = FakeEventSource([prediction_placed(7, block=95), prediction_placed(7, block=105, tx="0x02")], head=110)
    received = []

    async def sink(event):
        received.append(event)

    listener = LiveListener(source, sink, poll_interval_sec=0.001, from_block=100)
    asyncio.run(_run_until_drained(listener, source))
    assert source.log_queries == [(100, 110)]
    assert [e.meta.block_number for e in received] == [105]


def test_failed_catch_up_drops_the_new_filter():
    source = FakeEventSource(head=110, fail_windows={(100, 110)})
    received = []

    async def sink(event):
        received.append(event)

    async def scenario():
        listener = LiveListener(source, sink, poll_interval_sec=0.001, from_block=100)
        stop = asyncio.Event()
        task = asyncio.create_task(listener.run(stop))
        for _ in range(500):
            if len(source.filters_created) >= 2:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await task
        return listener

    listener = asyncio.run(scenario())
    assert listener.error_count >= 1
    # Each failed catch-up uninstalls its filter and the next poll retries from block 100.
    assert source.filters_created[:2] == [100, 100]
    assert source.filters_uninstalled[:1] == ["0xfilter1"]
