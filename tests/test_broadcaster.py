"""Tests for subscriber fan-out."""

import asyncio
import json
import threading
from unittest.mock import Mock

import pytest

from src.services.broadcaster import (
    Broadcaster,
    ChannelClosed,
    LoopChannel,
    QueueChannel,
    SubscriberChannel,
)


class TestQueueChannel:
    """Tests for the bounded in-process channel."""

    def test_send_then_receive(self):
        channel = QueueChannel()
        channel.send("hello")
        assert channel.receive(timeout=0) == "hello"

    def test_receive_times_out(self):
        assert QueueChannel().receive(timeout=0.01) is None

    def test_closed_channel_rejects_send(self):
        channel = QueueChannel()
        channel.close()

        assert channel.is_open is False
        with pytest.raises(ChannelClosed):
            channel.send("late")

    def test_full_channel_rejects_send(self):
        channel = QueueChannel(max_pending=2)
        channel.send("a")
        channel.send("b")

        with pytest.raises(ChannelClosed):
            channel.send("c")

    def test_satisfies_protocol(self):
        assert isinstance(QueueChannel(), SubscriberChannel)


class TestLoopChannel:
    """Tests for the event-loop channel used by WebSocket connections."""

    def test_send_from_other_thread_reaches_loop(self):
        async def scenario():
            channel = LoopChannel()
            sender = threading.Thread(target=channel.send, args=("hello",))
            sender.start()
            message = await asyncio.wait_for(channel.receive(), timeout=5)
            sender.join()
            return message

        assert asyncio.run(scenario()) == "hello"

    def test_close_wakes_waiting_receiver(self):
        async def scenario():
            channel = LoopChannel()
            waiter = asyncio.create_task(channel.receive())
            await asyncio.sleep(0)
            channel.close()
            return await asyncio.wait_for(waiter, timeout=5), channel.is_open

        assert asyncio.run(scenario()) == (None, False)

    def test_slow_consumer_rejected(self):
        async def scenario():
            channel = LoopChannel(max_pending=2)
            channel.send("a")
            channel.send("b")
            with pytest.raises(ChannelClosed):
                channel.send("c")
            assert await channel.receive() == "a"
            channel.send("c")

        asyncio.run(scenario())

    def test_closed_channel_rejects_send(self):
        async def scenario():
            channel = LoopChannel()
            channel.close()
            with pytest.raises(ChannelClosed):
                channel.send("late")

        asyncio.run(scenario())

    def test_waiting_receivers_hold_no_threads(self):
        async def scenario():
            baseline = threading.active_count()
            channels = [LoopChannel() for _ in range(60)]
            waiters = [asyncio.create_task(c.receive()) for c in channels]
            await asyncio.sleep(0.05)
            during = threading.active_count()

            broadcaster = Broadcaster()
            for channel in channels:
                broadcaster.subscribe(channel)
            delivered = await asyncio.to_thread(broadcaster.publish, {"n": 1})
            messages = await asyncio.wait_for(asyncio.gather(*waiters), timeout=5)
            return baseline, during, delivered, messages

        baseline, during, delivered, messages = asyncio.run(scenario())

        assert during <= baseline
        assert delivered == 60
        assert all(json.loads(m) == {"n": 1} for m in messages)

    def test_satisfies_protocol(self):
        async def scenario():
            return isinstance(LoopChannel(), SubscriberChannel)

        assert asyncio.run(scenario())

class TestBroadcaster:
    """Tests for Broadcaster."""

    def test_publish_reaches_every_open_subscriber(self):
        broadcaster = Broadcaster()
        channels = [broadcaster.subscribe() for _ in range(3)]

        delivered = broadcaster.publish({"type": "price_update", "data": [{"id": "bitcoin"}]})

        assert delivered == 3
        for channel in channels:
            assert json.loads(channel.receive(timeout=0)) == {
                "type": "price_update",
                "data": [{"id": "bitcoin"}],
            }

    def test_payload_serialized_once(self):
        broadcaster = Broadcaster()
        first, second = Mock(is_open=True), Mock(is_open=True)
        broadcaster.subscribe(first)
        broadcaster.subscribe(second)

        broadcaster.publish({"n": 1})

        sent_first = first.send.call_args.args[0]
        sent_second = second.send.call_args.args[0]
        assert sent_first is sent_second

    def test_closed_subscriber_is_dropped(self):
        broadcaster = Broadcaster()
        closed = broadcaster.subscribe()
        closed.close()
        live = broadcaster.subscribe()

        assert broadcaster.publish({"n": 1}) == 1
        assert broadcaster.subscriber_count == 1
        assert live.receive(timeout=0) is not None

    def test_failing_subscriber_is_dropped_without_retry(self):
        broadcaster = Broadcaster()
        failing = Mock(is_open=True)
        failing.send.side_effect = ConnectionResetError("gone")
        broadcaster.subscribe(failing)
        live = broadcaster.subscribe()

        assert broadcaster.publish({"n": 1}) == 1
        assert broadcaster.publish({"n": 2}) == 1
        assert failing.send.call_count == 1
        assert broadcaster.subscriber_count == 1
        assert live.receive(timeout=0) is not None

    def test_publish_without_subscribers(self):
        assert Broadcaster().publish({"n": 1}) == 0

    def test_unsubscribe_unknown_channel_is_ignored(self):
        broadcaster = Broadcaster()
        broadcaster.unsubscribe(QueueChannel())
        assert broadcaster.subscriber_count == 0

    def test_unsubscribed_channel_receives_nothing(self):
        broadcaster = Broadcaster()
        channel = broadcaster.subscribe()
        broadcaster.unsubscribe(channel)

        broadcaster.publish({"n": 1})

        assert channel.receive(timeout=0) is None

    def test_concurrent_subscribe_and_publish(self):
        broadcaster = Broadcaster()
        errors = []

        def subscriber_churn():
            try:
                for _ in range(200):
                    channel = broadcaster.subscribe(QueueChannel(max_pending=1000))
                    broadcaster.unsubscribe(channel)
            except Exception as e:
                errors.append(e)

        def publisher():
            try:
                for i in range(200):
                    broadcaster.publish({"n": i})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=subscriber_churn) for _ in range(4)]
        threads.append(threading.Thread(target=publisher))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert broadcaster.subscriber_count == 0
