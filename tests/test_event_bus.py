import json

from hirepipe.services.event_bus import ActivityFanout


async def test_publish_without_redis_reaches_every_listener():
    fanout = ActivityFanout(redis_url="")

    async with fanout.listen() as first, fanout.listen() as second:
        await fanout.publish({"activity_id": 1, "activity_type": "stage_change"})

        assert json.loads(first.get_nowait()) == {"activity_id": 1, "activity_type": "stage_change"}
        assert json.loads(second.get_nowait())["activity_id"] == 1

    assert fanout.listener_count == 0


async def test_full_listener_drops_oldest_entry():
    fanout = ActivityFanout(redis_url="", backlog=2)

    async with fanout.listen() as listener:
        for activity_id in range(3):
            await fanout.publish({"activity_id": activity_id})

        received = [json.loads(listener.get_nowait())["activity_id"] for _ in range(listener.qsize())]

    assert received == [1, 2]


async def test_publish_with_no_listeners_is_harmless():
    fanout = ActivityFanout(redis_url="")

    await fanout.publish({"activity_id": 7})

    assert fanout.listener_count == 0
