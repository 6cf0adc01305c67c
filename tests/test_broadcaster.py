import asyncio
import time

import pytest

from broadcaster import ConnectionManager, broadcast_loop, data_update, error_message
from plans import SubscriptionContext, SubscriptionPlan

PAYLOAD = {
    "weather": {"temperature": 21.0, "humidity": 60},
    "soil": {"moisture": 40.0, "ph": 6.6, "conductivity": 1.0},
    "cropHealth": {"score": 88},
    "yieldPrediction": {"perHectare": 5200},
    "historical": {"temperature": [21.0], "humidity": [60], "soilMoisture": [40.0], "timestamps": ["t"]},
}


class FakeSocket:
    def __init__(self, fail=False):
        self.accepted = False
        self.sent = []
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


class FakePayload:
    def to_wire(self):
        return PAYLOAD


class FakeService:
    def __init__(self):
        self.cycles = 0

    def build_payload(self):
        self.cycles += 1
        return FakePayload()


def test_messages():
    assert data_update({"a": 1}) == {"event": "dataUpdate", "data": {"a": 1}}
    assert error_message("Failed", "boom") == {"event": "error", "message": "Failed", "details": "boom"}


def test_broadcast_redacts_per_client():
    async def scenario():
        manager = ConnectionManager()
        free, premium = FakeSocket(), FakeSocket()
        await manager.connect(free, SubscriptionContext())
        await manager.connect(premium, SubscriptionContext(plan=SubscriptionPlan.PREMIUM))
        return manager, free, premium, await manager.broadcast(PAYLOAD)

    manager, free, premium, delivered = asyncio.run(scenario())

    assert delivered == 2
    assert free.accepted and premium.accepted
    assert "cropHealth" not in free.sent[0]["data"]
    assert premium.sent[0]["data"] == PAYLOAD


def test_failed_socket_is_dropped():
    async def scenario():
        manager = ConnectionManager()
        good, bad = FakeSocket(), FakeSocket(fail=True)
        await manager.connect(good, SubscriptionContext())
        await manager.connect(bad, SubscriptionContext())
        return manager, good, bad, await manager.broadcast(PAYLOAD)

    manager, good, bad, delivered = asyncio.run(scenario())

    assert delivered == 1
    assert len(manager) == 1
    assert good in manager.active and bad not in manager.active


def test_set_context_changes_view():
    async def scenario():
        manager = ConnectionManager()
        ws = FakeSocket()
        await manager.connect(ws, SubscriptionContext())
        manager.set_context(ws, SubscriptionContext(plan=SubscriptionPlan.PRO))
        await manager.send_payload(ws, PAYLOAD)
        return ws

    ws = asyncio.run(scenario())
    assert "cropHealth" in ws.sent[0]["data"]
    assert "yieldPrediction" not in ws.sent[0]["data"]


class StopLoop(Exception):
    pass


def _stop_after(ticks):
    calls = []

    async def sleep(interval):
        calls.append(interval)
        if len(calls) > ticks:
            raise StopLoop()

    return sleep, calls


def test_loop_skips_refresh_without_clients():
    service = FakeService()
    sleep, calls = _stop_after(2)

    with pytest.raises(StopLoop):
        asyncio.run(broadcast_loop(ConnectionManager(), service, 120, sleep=sleep))

    assert calls == [120, 120, 120]
    assert service.cycles == 0


def test_loop_pushes_to_connected_clients():
    service = FakeService()
    manager = ConnectionManager()
    ws = FakeSocket()
    sleep, _ = _stop_after(2)

    async def scenario():
        await manager.connect(ws, SubscriptionContext())
        await broadcast_loop(manager, service, 5, sleep=sleep)

    with pytest.raises(StopLoop):
        asyncio.run(scenario())

    assert service.cycles == 2
    assert [message["event"] for message in ws.sent] == ["dataUpdate", "dataUpdate"]


class SlowService(FakeService):
    def build_payload(self):
        time.sleep(0.5)
        return super().build_payload()


def test_slow_refresh_does_not_block_the_event_loop():
    service = SlowService()
    manager = ConnectionManager()
    ws = FakeSocket()
    sleep, _ = _stop_after(1)

    async def scenario():
        await manager.connect(ws, SubscriptionContext())
        loop_task = asyncio.create_task(broadcast_loop(manager, service, 0, sleep=sleep))
        await asyncio.sleep(0.05)
        started = time.monotonic()
        await asyncio.sleep(0.01)
        lag = time.monotonic() - started
        with pytest.raises(StopLoop):
            await loop_task
        return lag

    assert asyncio.run(scenario()) < 0.2
    assert service.cycles == 1
