import asyncio
import json
from typing import Any, Dict


# In-memory pubsub for SSE (single process; replace with Redis for scale)
class EventBus:
    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue[str]] = set()

    def subscribe(self) -> asyncio.Queue[str]:
        q: asyncio.Queue[str] = asyncio.Queue()
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue[str]) -> None:
        self._subscribers.discard(q)

    async def publish(self, data: str) -> None:
        for q in list(self._subscribers):
            # queues are unbounded
            q.put_nowait(data)


def occupancy_event(kind: str, slot_id: str, license_plate: str) -> str:
    payload: Dict[str, Any] = {"type": kind, "slotId": slot_id, "licensePlate": license_plate}
    return json.dumps(payload)


event_bus = EventBus()
