"""Tests for subscription registry and delivery channels."""

import asyncio
import threading

import pytest

from buzzhub.core.exceptions import ChannelClosed
from buzzhub.models import DeliveryEvent, Message
from buzzhub.services.delivery import DeliveryChannel, SubscriptionRegistry


def make_event(conversation_id: str = "c1", body: str = "hi") -> DeliveryEvent:
    return DeliveryEvent(
        conversation_id=conversation_id,
        message=Message(id=f"m-{body}", conversation_id=conversation_id, sender_id="alice", body=body),
    )


class TestDeliveryChannel:
    """Tests for the per-connection channel."""

    @pytest.mark.asyncio
    async def test_offer_and_get(self):
        channel = DeliveryChannel(maxsize=2)
        event = make_event()

        assert channel.offer(event) is True
        assert await channel.get() == event

    @pytest.mark.asyncio
    async def test_full_channel_drops(self):
        channel = DeliveryChannel(maxsize=1)

        assert channel.offer(make_event(body="a")) is True
        assert channel.offer(make_event(body="b")) is False
        assert channel.dropped == 1

    @pytest.mark.asyncio
    async def test_closed_channel(self):
        channel = DeliveryChannel()
        channel.close()

        with pytest.raises(ChannelClosed):
            channel.offer(make_event())
        with pytest.raises(ChannelClosed):
            await channel.get()

    @pytest.mark.asyncio
    async def test_close_wakes_reader(self):
        channel = DeliveryChannel()

        async def drain() -> list[DeliveryEvent]:
            return [event async for event in channel]

        reader = asyncio.create_task(drain())
        await asyncio.sleep(0)
        channel.offer(make_event())
        await asyncio.sleep(0)
        channel.close()

        events = await asyncio.wait_for(reader, timeout=1)
        assert len(events) == 1


class TestSubscriptionRegistry:
    """Tests for fan-out through the registry."""

    def test_each_connection_gets_its_own_delivery(self):
        registry = SubscriptionRegistry()
        phone, laptop = DeliveryChannel(), DeliveryChannel()
        registry.subscribe("c1", "bob-session", phone)
        registry.subscribe("c1", "bob-session", laptop)

        assert registry.dispatch(make_event()) == 2
        assert registry.subscription_count("c1") == 2

    def test_dispatch_matches_conversation(self):
        registry = SubscriptionRegistry()
        channel = DeliveryChannel()
        registry.subscribe("c2", "s", channel)

        assert registry.dispatch(make_event("c1")) == 0

    def test_closed_channel_is_cleaned_up(self):
        registry = SubscriptionRegistry()
        dead, alive = DeliveryChannel(), DeliveryChannel()
        registry.subscribe("c1", "s1", dead)
        registry.subscribe("c1", "s2", alive)
        dead.close()

        assert registry.dispatch(make_event()) == 1
        assert registry.subscription_count("c1") == 1

    def test_stalled_channel_does_not_block_healthy_one(self):
        registry = SubscriptionRegistry()
        stalled, healthy = DeliveryChannel(maxsize=1), DeliveryChannel(maxsize=10)
        registry.subscribe("c1", "s1", stalled)
        registry.subscribe("c1", "s2", healthy)

        for n in range(5):
            registry.dispatch(make_event(body=str(n)))

        assert stalled.dropped == 4
        assert healthy.dropped == 0
        assert registry.subscription_count("c1") == 2

    def test_unsubscribe_is_idempotent(self):
        registry = SubscriptionRegistry()
        handle = registry.subscribe("c1", "s", DeliveryChannel())

        assert registry.unsubscribe(handle) is True
        assert registry.unsubscribe(handle) is False
        assert registry.dispatch(make_event()) == 0

    def test_concurrent_subscribe_unsubscribe(self):
        registry = SubscriptionRegistry()
        errors: list[Exception] = []

        def churn(worker: int) -> None:
            try:
                for n in range(200):
                    handle = registry.subscribe(f"c{n % 3}", f"s{worker}", DeliveryChannel())
                    registry.dispatch(make_event(f"c{n % 3}"))
                    registry.unsubscribe(handle)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=churn, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert registry.subscription_count() == 0

    @pytest.mark.asyncio
    async def test_bus_attachment_follows_subscriptions(self, bus, registry):
        channel = DeliveryChannel()
        first = registry.subscribe("c1", "s1", channel)
        second = registry.subscribe("c1", "s2", DeliveryChannel())
        assert bus.subscriber_count("c1") == 1

        bus.publish(make_event())
        event = await asyncio.wait_for(channel.get(), timeout=1)
        assert event.message.body == "hi"

        registry.unsubscribe(first)
        assert bus.subscriber_count("c1") == 1
        registry.unsubscribe(second)
        assert bus.subscriber_count("c1") == 0

    @pytest.mark.asyncio
    async def test_stale_cleanup_through_bus(self, bus, registry):
        channel = DeliveryChannel()
        registry.subscribe("c1", "s1", channel)
        channel.close()

        bus.publish(make_event())
        for _ in range(50):
            if registry.subscription_count("c1") == 0:
                break
            await asyncio.sleep(0.01)

        assert registry.subscription_count("c1") == 0
        assert bus.subscriber_count("c1") == 0

    @pytest.mark.asyncio
    async def test_stale_cleanup_stops_bus_worker(self, bus, registry):
        channel = DeliveryChannel()
        registry.subscribe("c1", "s1", channel)
        worker = next(iter(bus._by_token.values())).task
        channel.close()

        bus.publish(make_event())
        for _ in range(50):
            if worker.done():
                break
            await asyncio.sleep(0.01)

        assert worker.done()
        assert not worker.cancelled()
        assert bus.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_subscribe_on_closed_bus_registers_nothing(self, bus, registry):
        await bus.close()

        with pytest.raises(RuntimeError):
            registry.subscribe("c1", "s1", DeliveryChannel())

        assert registry.subscription_count() == 0
