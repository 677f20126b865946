"""Accumulates multi-message questions until the contact ends one with "?"."""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from leadflow.logging_config import get_logger

logger = get_logger("question_buffer")

BufferKey = Tuple[str, str]  # (channel instance, contact key)


@dataclass
class BufferEntry:
    fragments: List[str] = field(default_factory=list)
    generation: int = 0
    timer: Optional[asyncio.Task] = None


class PendingQuestionBuffer:
    """Per-contact fragment buffer with a single-shot reminder timer.

    push() appends a fragment and re-arms the reminder; consume() joins every
    fragment with the final one and clears the entry; cancel() drops it. The
    timer is owned by the entry, so consuming or cancelling always disarms it.

    Conversation turns run in worker threads. Timers always live on the event
    loop given to attach_loop(); calls made off that loop hand their timer work
    over with call_soon_threadsafe.
    """

    def __init__(
        self,
        *,
        reminder_delay_seconds: float,
        on_reminder: Callable[[BufferKey], Awaitable[None]],
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.reminder_delay_seconds = reminder_delay_seconds
        self.on_reminder = on_reminder
        self.sleep_func = sleep_func
        self._loop = loop
        self._entries: Dict[BufferKey, BufferEntry] = {}

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def fragments(self, key: BufferKey) -> List[str]:
        entry = self._entries.get(key)
        return list(entry.fragments) if entry else []

    def has_timer(self, key: BufferKey) -> bool:
        entry = self._entries.get(key)
        return bool(entry and entry.timer and not entry.timer.done())

    def push(self, key: BufferKey, fragment: str) -> List[str]:
        entry = self._entries.setdefault(key, BufferEntry())
        text = (fragment or "").strip()
        if text:
            entry.fragments.append(text)
        self._disarm(entry)
        if not self._call_on_loop(self._start_timer, key, entry, entry.generation):
            logger.warning("No running event loop, question reminder not armed")
        return list(entry.fragments)

    def consume(self, key: BufferKey, final_fragment: str) -> str:
        entry = self._entries.pop(key, None)
        parts = list(entry.fragments) if entry else []
        if entry:
            self._disarm(entry)
        final = (final_fragment or "").strip()
        if final:
            parts.append(final)
        return " ".join(parts).strip()

    def cancel(self, key: BufferKey) -> None:
        entry = self._entries.pop(key, None)
        if entry:
            self._disarm(entry)
            logger.debug("Question buffer cancelled", extra={"context": {"key": list(key)}})

    def cancel_all(self) -> None:
        for key in list(self._entries):
            self.cancel(key)

    def _disarm(self, entry: BufferEntry) -> None:
        # A stale generation makes a timer that already woke up a no-op.
        entry.generation += 1
        timer, entry.timer = entry.timer, None
        if timer is not None and not timer.done():
            self._call_on_loop(timer.cancel)

    def _call_on_loop(self, callback: Callable, *args) -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            if self._loop is None or self._loop.is_closed():
                return False
            self._loop.call_soon_threadsafe(callback, *args)
            return True
        callback(*args)
        return True

    def _start_timer(self, key: BufferKey, entry: BufferEntry, generation: int) -> None:
        if self._entries.get(key) is not entry or entry.generation != generation:
            return
        entry.timer = asyncio.get_running_loop().create_task(self._remind_later(key, entry, generation))

    async def _remind_later(self, key: BufferKey, entry: BufferEntry, generation: int) -> None:
        try:
            await self.sleep_func(self.reminder_delay_seconds)
        except asyncio.CancelledError:
            return
        if self._entries.get(key) is not entry or entry.generation != generation:
            return
        entry.timer = None
        try:
            await self.on_reminder(key)
        except Exception as e:
            logger.error(f"Question reminder failed: {e}", extra={"context": {"key": list(key)}})
