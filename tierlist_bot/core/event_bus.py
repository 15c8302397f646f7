"""
Asynchronous publish/subscribe bus that runs post-commit hooks.

Engines commit state first and emit afterwards; a failing handler never
undoes the commit. Failures are logged, kept in ``failures`` and re-emitted
on ``HOOK_ERROR`` so an error sink can pick them up.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, DefaultDict, Deque, List

from .event_topics import HOOK_ERROR

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None]]


@dataclass(slots=True)
class HookFailure:
    event: str
    handler: str
    exc: BaseException


class EventBus:
    """Lightweight async event bus with coroutine handlers."""

    def __init__(self, *, max_failures: int = 100) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.failures: Deque[HookFailure] = deque(maxlen=max_failures)

    async def subscribe(self, event: str, handler: Handler) -> None:
        async with self._lock:
            self._handlers[event].append(handler)

    def handlers_for(self, event: str) -> List[Handler]:
        return list(self._handlers.get(event, []))

    async def emit(self, topic: str, /, **payload: Any) -> None:
        for handler in self.handlers_for(topic):
            try:
                await handler(**payload)
            except Exception as exc:
                name = getattr(handler, "__qualname__", repr(handler))
                logger.warning("Hook %s failed for %s: %s", name, topic, exc)
                self.failures.append(HookFailure(event=topic, handler=name, exc=exc))
                if topic != HOOK_ERROR:
                    await self.emit(HOOK_ERROR, event=topic, handler=handler, exc=exc)


__all__ = ["EventBus", "Handler", "HookFailure"]
