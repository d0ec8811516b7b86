"""
Research Progress Reporting

The pipeline reports progress through a ProgressReporter. Two
implementations:

- ProgressStream: bounded asyncio.Queue the caller iterates over
  (used by the SSE endpoint and the CLI). Publishing never blocks the
  pipeline; when the queue is full the oldest event is dropped.
- CallbackProgress: adapts a plain callable.

Both support cancellation. The pipeline checks `cancelled` between
products and between enhancement items.

Usage:
    stream = ProgressStream()
    task = asyncio.create_task(pipeline.research(asins, options, progress=stream))
    async for event in stream:
        print(event.progress, event.message)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .models import utc_now

logger = logging.getLogger(__name__)


class ResearchPhase(str, Enum):
    """Pipeline phases reported to the caller."""
    KEYWORD_EXTRACTION = "keyword_extraction"
    KEYWORD_AGGREGATION = "keyword_aggregation"
    OPPORTUNITY_MINING = "opportunity_mining"
    GAP_ANALYSIS = "gap_analysis"
    KEYWORD_ENHANCEMENT = "keyword_enhancement"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """One progress update."""
    phase: ResearchPhase
    message: str
    progress: int
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "message": self.message,
            "progress": self.progress,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


class ProgressReporter:
    """Base reporter: discards events, tracks cancellation."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def publish(self, event: ProgressEvent) -> None:
        pass

    def report(
        self,
        phase: ResearchPhase,
        message: str,
        progress: int,
        data: Optional[Dict[str, Any]] = None,
    ) -> ProgressEvent:
        event = ProgressEvent(
            phase=phase,
            message=message,
            progress=max(0, min(100, int(progress))),
            data=data,
        )
        self.publish(event)
        return event

    def close(self) -> None:
        pass


class CallbackProgress(ProgressReporter):
    """Forwards every event to `callback(phase, message, progress, data)`."""

    def __init__(self, callback: Callable[[str, str, int, Optional[Dict[str, Any]]], Any]):
        super().__init__()
        self.callback = callback

    def publish(self, event: ProgressEvent) -> None:
        try:
            self.callback(event.phase.value, event.message, event.progress, event.data)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")


_CLOSED = object()


class ProgressStream(ProgressReporter):
    """Bounded event stream consumed with `async for`."""

    def __init__(self, maxsize: int = 100):
        super().__init__()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: Any) -> None:
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except asyncio.QueueFull:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except asyncio.QueueEmpty:
                    pass

    def publish(self, event: ProgressEvent) -> None:
        if self._closed:
            return
        self._put(event)

    def close(self) -> None:
        """End iteration once queued events are consumed."""
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def cancel(self) -> None:
        """Ask the pipeline to stop and close the stream."""
        super().cancel()
        self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item
