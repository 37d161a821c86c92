"""
Best-effort answer log writer.

Answer events are queued and written by a background worker. The caller never
waits on the write and never sees its outcome; failures and drops go to the
`simulado.diagnostics` logger and the `failures` ring.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Optional

from simulado.models import AnswerEvent

logger = logging.getLogger(__name__)
diagnostics = logging.getLogger("simulado.diagnostics")


@dataclass(frozen=True)
class WriteFailure:
    event: AnswerEvent
    reason: str
    at: datetime


class AnswerWriter:
    def __init__(self, db, maxsize: int = 100, keep_failures: int = 50):
        self.db = db
        self.maxsize = maxsize
        self.failures: Deque[WriteFailure] = deque(maxlen=keep_failures)
        self.written = 0
        self.dropped = 0
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self.maxsize)
        self._worker = asyncio.ensure_future(self._run())

    def submit(self, event: AnswerEvent) -> bool:
        """Queue an event for writing. Returns False if the queue was full and the event dropped."""
        self.start()
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            self._record_failure(event, "write queue full")
            return False
        return True

    def _record_failure(self, event: AnswerEvent, reason: str) -> None:
        self.failures.append(WriteFailure(event=event, reason=reason, at=datetime.now(timezone.utc)))
        diagnostics.warning(
            "Answer for question %s by %s not saved: %s", event.question_id, event.user_id, reason
        )

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.db.append_answer_event(event)
                self.written += 1
            except Exception as e:
                self._record_failure(event, str(e))
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been attempted."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def aclose(self) -> None:
        await self.drain()
        if self.running:
            self._worker.cancel()
            await asyncio.wait([self._worker])
        self._worker = None
        logger.debug("Answer writer closed: %d written, %d failed, %d dropped", self.written, len(self.failures), self.dropped)
