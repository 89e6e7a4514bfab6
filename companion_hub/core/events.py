"""
A per-app notification channel. Observers register callbacks (optionally
filtered by event kind) or consume events through an async iterator.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterable

from companion_hub.models.events import AppEvent, EventKind

log = logging.getLogger(__name__)

Observer = Callable[[AppEvent], None]


class EventChannel:
    """Delivers events synchronously and in emission order to every observer."""

    def __init__(self) -> None:
        self._observers: list[tuple[Observer, frozenset[EventKind] | None]] = []
        self._queues: list[asyncio.Queue] = []

    def subscribe(
        self, observer: Observer, kinds: Iterable[EventKind] | None = None
    ) -> Callable[[], None]:
        """
        Registers an observer.

        Args:
            observer: Called with every matching event.
            kinds: Restricts delivery to these kinds; all kinds when omitted.

        Returns:
            A function that removes the observer again.
        """
        entry = (observer, frozenset(kinds) if kinds is not None else None)
        self._observers.append(entry)

        def unsubscribe() -> None:
            if entry in self._observers:
                self._observers.remove(entry)

        return unsubscribe

    def emit(self, event: AppEvent) -> None:
        """Publishes an event; failing observers are logged and skipped."""
        for observer, kinds in list(self._observers):
            if kinds is not None and event.kind not in kinds:
                continue
            try:
                observer(event)
            except Exception:
                log.exception(
                    f"Observer {observer!r} failed while handling "
                    f"'{event.kind.value}' for '{event.app_name}'."
                )
        for queue in self._queues:
            queue.put_nowait(event)

    async def listen(
        self, kinds: Iterable[EventKind] | None = None
    ) -> AsyncIterator[AppEvent]:
        """Yields events as they are emitted until the consumer stops iterating."""
        wanted = frozenset(kinds) if kinds is not None else None
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            while True:
                event = await queue.get()
                if wanted is None or event.kind in wanted:
                    yield event
        finally:
            self._queues.remove(queue)

    @property
    def observer_count(self) -> int:
        return len(self._observers)
