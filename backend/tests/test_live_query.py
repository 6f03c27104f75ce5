"""Tests for the in-process live query hub."""
import asyncio

from pharmadesk.services.live_query import LiveQueryHub, conversations_topic, messages_topic


def test_topics():
    assert conversations_topic("u1") == "conversations:u1"
    assert messages_topic("c1") == "messages:c1"


def test_initial_snapshot_and_full_pushes():
    hub = LiveQueryHub()
    rows = ["a"]
    received = []

    async def scenario():
        subscription = await hub.subscribe("t", lambda: list(rows), received.append)
        rows.append("b")
        await hub.publish("t")
        await hub.publish("other")
        return subscription

    subscription = asyncio.run(scenario())
    assert received == [["a"], ["a", "b"]]
    assert subscription.deliveries == 2


def test_async_query_and_listener():
    hub = LiveQueryHub()
    received = []

    async def query():
        return [1, 2]

    async def listener(snapshot):
        received.append(snapshot)

    async def scenario():
        await hub.subscribe("t", query, listener)

    asyncio.run(scenario())
    assert received == [[1, 2]]


def test_unsubscribe_is_idempotent_and_stops_pushes():
    hub = LiveQueryHub()
    received = []

    async def scenario():
        subscription = await hub.subscribe("t", lambda: "x", received.append)
        subscription.unsubscribe()
        subscription.unsubscribe()
        await hub.publish("t")
        return subscription

    subscription = asyncio.run(scenario())
    assert received == ["x"]
    assert not subscription.active
    assert hub.subscriber_count() == 0


def test_context_managers_release():
    hub = LiveQueryHub()

    async def scenario():
        with await hub.subscribe("t", lambda: 1, lambda _: None):
            assert hub.subscriber_count("t") == 1
        assert hub.subscriber_count("t") == 0
        async with await hub.subscribe("t", lambda: 1, lambda _: None) as subscription:
            assert subscription.active
        assert hub.subscriber_count("t") == 0

    asyncio.run(scenario())


def test_failing_query_closes_subscription_and_reports():
    hub = LiveQueryHub()
    errors = []
    calls = {"n": 0}

    def query():
        calls["n"] += 1
        if calls["n"] > 1:
            raise RuntimeError("permission denied")
        return "ok"

    async def scenario():
        subscription = await hub.subscribe("t", query, lambda _: None, on_error=errors.append)
        await hub.publish("t")
        await hub.publish("t")
        return subscription

    subscription = asyncio.run(scenario())
    assert subscription.closed
    assert [str(e) for e in errors] == ["permission denied"]
    # No retry after the failure
    assert calls["n"] == 2


def test_other_subscribers_unaffected_by_failure():
    hub = LiveQueryHub()
    good = []

    def bad_listener(_):
        raise ValueError("boom")

    async def scenario():
        await hub.subscribe("t", lambda: "v", good.append)
        await hub.subscribe("t", lambda: "v", lambda s: None)
        hub._subscriptions["t"][1].listener = bad_listener
        await hub.publish("t")

    asyncio.run(scenario())
    assert good == ["v", "v"]
    assert hub.subscriber_count("t") == 1


def test_concurrent_publishes_deliver_in_order():
    hub = LiveQueryHub()
    counter = {"n": 0}
    received = []

    async def query():
        counter["n"] += 1
        value = counter["n"]
        await asyncio.sleep(0)
        return value

    async def scenario():
        await hub.subscribe("t", query, received.append)
        await asyncio.gather(*(hub.publish("t") for _ in range(5)))

    asyncio.run(scenario())
    assert received == sorted(received)
    assert len(received) == 6
