# tests/fakes.py

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from chronotask.services.delivery import DeliveryProvider


class FixedClock:
    """Settable clock so every timestamp in a test is deterministic."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class FakeDelivery(DeliveryProvider):
    """
    Delivery provider capturing payloads.

    - `succeed` controls the returned flag
    - `error` is raised from send when set
    - `delay` makes send slow enough to hit the scheduler timeout
    - `on_send` runs before the send completes (to inspect persisted state)
    """

    succeed: bool = True
    error: Optional[Exception] = None
    delay: float = 0.0
    on_send: Optional[Callable[[str], None]] = None
    sent: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    closed: bool = False

    async def send(self, profile_id: str, payload: Dict[str, Any]) -> bool:
        if self.on_send is not None:
            self.on_send(profile_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.sent.append((profile_id, payload))
        return self.succeed

    async def close(self) -> None:
        self.closed = True
