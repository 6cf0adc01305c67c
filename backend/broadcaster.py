"""
Smart Farming - WebSocket push channel.
Tracks connected clients with their subscription context and pushes dashboard payloads,
redacted per client plan.
"""
import asyncio
import logging
from typing import Any, Callable, Dict

from fastapi import WebSocket

from data_service import FarmDataService
from plans import SubscriptionContext, redact_payload

logger = logging.getLogger("smartfarm.push")


def data_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": "dataUpdate", "data": payload}


def error_message(message: str, details: str) -> Dict[str, Any]:
    return {"event": "error", "message": message, "details": details}


class ConnectionManager:
    """Connected sockets and the plan each one is allowed to see."""

    def __init__(self):
        self.active: Dict[WebSocket, SubscriptionContext] = {}

    def __len__(self) -> int:
        return len(self.active)

    async def connect(self, websocket: WebSocket, context: SubscriptionContext) -> None:
        await websocket.accept()
        self.active[websocket] = context
        logger.info(f"Client connected ({context.plan.value}); {len(self.active)} connected")

    def disconnect(self, websocket: WebSocket) -> None:
        if self.active.pop(websocket, None) is not None:
            logger.info(f"Client disconnected; {len(self.active)} connected")

    def set_context(self, websocket: WebSocket, context: SubscriptionContext) -> None:
        if websocket in self.active:
            self.active[websocket] = context

    async def send_payload(self, websocket: WebSocket, payload: Dict[str, Any]) -> None:
        context = self.active.get(websocket, SubscriptionContext())
        await websocket.send_json(data_update(redact_payload(payload, context.plan)))

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Send to every client; sockets that fail are dropped. Returns the number reached."""
        delivered = 0
        for websocket in list(self.active):
            try:
                await self.send_payload(websocket, payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping client after send failure: {e}")
                self.disconnect(websocket)
        return delivered


async def broadcast_loop(
    manager: ConnectionManager,
    service: FarmDataService,
    interval: float,
    sleep: Callable[[float], Any] = asyncio.sleep,
) -> None:
    """Refresh and push every `interval` seconds while at least one client is connected."""
    while True:
        await sleep(interval)
        if not len(manager):
            continue
        try:
            payload = (await asyncio.to_thread(service.build_payload)).to_wire()
        except Exception:
            logger.exception("Broadcast refresh failed")
            continue
        delivered = await manager.broadcast(payload)
        logger.debug(f"Broadcast dataUpdate to {delivered} client(s)")
