from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
import json
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    table: str
    operation: str
    entity_id: str
    owner_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_notification(cls, raw: str) -> ChangeEvent:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("change notification is not an object")
        table = data.get("table")
        entity_id = data.get("id")
        if not isinstance(table, str) or entity_id is None:
            raise ValueError("change notification is missing table or id")
        owner_id = data.get("owner_id")
        return cls(
            table=table,
            operation=str(data.get("operation") or "UPDATE").upper(),
            entity_id=str(entity_id),
            owner_id=str(owner_id) if owner_id is not None else None,
            payload=data,
        )

    def concerns(self, entity_id: str) -> bool:
        return entity_id in (self.entity_id, self.owner_id)


class ChangeFeed(Protocol):
    async def listen(self, table: str, callback: Callable[[ChangeEvent], None]) -> None: ...

    async def unlisten(self, table: str, callback: Callable[[ChangeEvent], None]) -> None: ...

    def listener_count(self) -> int: ...


class ChangeSubscription:
    """One view's subscription to changes of a single entity.

    Matching events are queued for :meth:`events` and mark the view dirty; a
    single refresh task runs ``reread`` once per dirty burst. ``latest`` holds
    the result of the last successful re-read.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        *,
        table: str,
        entity_id: str,
        reread: Callable[[], Awaitable[Any]] | None = None,
        max_pending_events: int = 100,
    ) -> None:
        self.feed = feed
        self.table = table
        self.entity_id = entity_id
        self.latest: Any = None
        self.reread_count = 0
        self._reread = reread
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(maxsize=max(1, max_pending_events))
        self._dirty = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._refresh_task: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False

    @property
    def active(self) -> bool:
        return self._started and not self._closed

    async def start(self) -> ChangeSubscription:
        if self._closed:
            raise RuntimeError("subscription already closed")
        if self._started:
            return self
        await self.feed.listen(self.table, self._on_event)
        self._started = True
        if self._reread is not None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())
        logger.debug("subscribed table=%s entity_id=%s", self.table, self.entity_id)
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        if self._started:
            await self.feed.unlisten(self.table, self._on_event)
        self._idle.set()
        self._push(None)
        logger.debug("unsubscribed table=%s entity_id=%s", self.table, self.entity_id)

    async def __aenter__(self) -> ChangeSubscription:
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def events(self) -> AsyncIterator[ChangeEvent]:
        while not self._closed or not self._queue.empty():
            event = await self._queue.get()
            if event is None:
                return
            yield event

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    def _on_event(self, event: ChangeEvent) -> None:
        if self._closed or event.table != self.table or not event.concerns(self.entity_id):
            return
        self._push(event)
        if self._reread is not None:
            self._idle.clear()
            self._dirty.set()

    def _push(self, event: ChangeEvent | None) -> None:
        if self._queue.full():
            # Slow consumers lose the oldest events; the re-read still sees the newest state.
            self._queue.get_nowait()
        self._queue.put_nowait(event)

    async def _refresh_loop(self) -> None:
        assert self._reread is not None
        while True:
            await self._dirty.wait()
            self._dirty.clear()
            try:
                self.latest = await self._reread()
                self.reread_count += 1
            except Exception:
                logger.exception("re-read failed table=%s entity_id=%s", self.table, self.entity_id)
            if not self._dirty.is_set():
                self._idle.set()


async def subscribe(
    feed: ChangeFeed,
    *,
    table: str,
    entity_id: str,
    reread: Callable[[], Awaitable[Any]] | None = None,
) -> ChangeSubscription:
    subscription = ChangeSubscription(feed, table=table, entity_id=entity_id, reread=reread)
    return await subscription.start()
