"""Tests for the change feed fan-out and refetch-on-notification."""

from organizer.features.base import table_collection
from organizer.models.records import DomainRecord
from organizer.services.storage import ChangeEvent, ChangeNotification
from organizer.store import SubscriptionManager


class Item(DomainRecord):
    name: str


ITEMS = "items"


class TestSubscriptionManager:

    async def test_one_feed_subscription_per_table(self, backend, gateway, subscriptions):
        first = table_collection(gateway, ITEMS, Item)
        second = table_collection(gateway, ITEMS, Item)

        await first.bind(subscriptions, [ITEMS])
        await second.bind(subscriptions, [ITEMS])

        assert backend.subscriber_count(ITEMS) == 1
        assert subscriptions.listener_count(ITEMS) == 2

        await first.close()
        assert backend.subscriber_count(ITEMS) == 1
        await second.close()
        assert backend.subscriber_count(ITEMS) == 0
        assert not subscriptions.is_subscribed(ITEMS)

    async def test_failing_callback_does_not_block_others(self, gateway):
        manager = SubscriptionManager(gateway)
        received = []

        async def broken(notification):
            raise RuntimeError("boom")

        async def healthy(notification):
            received.append(notification)

        await manager.add(ITEMS, broken)
        await manager.add(ITEMS, healthy)
        await manager._dispatch(ChangeNotification(table=ITEMS, event=ChangeEvent.INSERT))

        assert len(received) == 1

    async def test_close_drops_everything(self, backend, gateway, subscriptions):
        collection = table_collection(gateway, ITEMS, Item)
        await collection.bind(subscriptions, [ITEMS, "other"])
        await subscriptions.close()
        assert backend.subscriber_count(ITEMS) == 0
        assert backend.subscriber_count("other") == 0


class TestRefetchOnNotification:

    async def test_other_device_change_triggers_refetch(
        self, backend, gateway, other_gateway, subscriptions,
    ):
        mine = table_collection(gateway, ITEMS, Item)
        await mine.bind(subscriptions, [ITEMS])
        await mine.refresh()
        assert len(mine) == 0

        await other_gateway.insert(ITEMS, {"name": "lamp"})
        await backend.flush()

        assert [i.name for i in mine] == ["lamp"]

    async def test_own_change_also_notifies(self, backend, gateway, subscriptions):
        mine = table_collection(gateway, ITEMS, Item)
        await mine.bind(subscriptions, [ITEMS])
        await mine.refresh()

        result = await mine.insert(Item(name="lamp"))
        await backend.flush()

        assert result.ok
        assert mine.keys() == [result.record.id]

    async def test_unmounted_collection_stops_listening(self, backend, gateway, other_gateway, subscriptions):
        mine = table_collection(gateway, ITEMS, Item)
        await mine.bind(subscriptions, [ITEMS])
        await mine.refresh()
        await mine.close()

        await other_gateway.insert(ITEMS, {"name": "lamp"})
        await backend.flush()

        assert len(mine) == 0
