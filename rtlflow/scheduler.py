"""Host scheduling primitives and the time-sliced batch scheduler."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import math
from enum import Enum, auto
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Tuple

from .dom import Element

logger = logging.getLogger(__name__)

Callback = Callable[[], None]

DEFAULT_FRAME_INTERVAL_MS = 1000 / 60


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Host(Protocol):
    """Scheduling services offered by whatever loop drives the engine."""

    def now(self) -> float:
        """Current time in milliseconds."""

    def call_soon(self, callback: Callback) -> Cancellable:
        ...

    def call_later(self, delay_ms: float, callback: Callback) -> Cancellable:
        ...

    def request_frame(self, callback: Callback) -> Cancellable:
        """Run callback at the next frame boundary."""


class TimerHandle:
    """Cancellable handle for a callback queued on a :class:`ManualHost`."""

    def __init__(self, due: float, callback: Callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualHost:
    """A host driven by a virtual clock.

    Nothing runs until :meth:`advance` or :meth:`run_until_idle` is called,
    which makes the engine's timing fully deterministic. :meth:`spend` moves
    the clock forward without running anything and stands in for the cost of
    real work.
    """

    def __init__(self, *, frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS) -> None:
        self.frame_interval_ms = frame_interval_ms
        self._now = 0.0
        self._queue: List[Tuple[float, int, TimerHandle]] = []
        self._counter = itertools.count()
        self.frames = 0

    def now(self) -> float:
        return self._now

    def spend(self, ms: float) -> None:
        self._now += ms

    def call_soon(self, callback: Callback) -> TimerHandle:
        return self._schedule(self._now, callback)

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle:
        return self._schedule(self._now + max(0.0, delay_ms), callback)

    def request_frame(self, callback: Callback) -> TimerHandle:
        interval = self.frame_interval_ms
        boundary = (math.floor(self._now / interval) + 1) * interval

        def _frame() -> None:
            self.frames += 1
            callback()

        return self._schedule(boundary, _frame)

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, ms: float) -> None:
        """Move the clock forward by ``ms``, running every callback that falls due."""

        deadline = self._now + ms
        while self._queue and self._queue[0][0] <= deadline:
            self._run_next()
        self._now = max(self._now, deadline)

    def run_until_idle(self, *, max_callbacks: int = 1_000_000) -> int:
        """Run queued callbacks in time order until nothing is left."""

        executed = 0
        while self._queue:
            if executed >= max_callbacks:
                raise RuntimeError("ManualHost did not settle; callbacks keep rescheduling.")
            if self._run_next():
                executed += 1
        return executed

    def _schedule(self, due: float, callback: Callback) -> TimerHandle:
        handle = TimerHandle(due, callback)
        heapq.heappush(self._queue, (due, next(self._counter), handle))
        return handle

    def _run_next(self) -> bool:
        due, _, handle = heapq.heappop(self._queue)
        if handle.cancelled:
            return False
        self._now = max(self._now, due)
        handle.callback()
        return True


class AsyncioHost:
    """Host backed by an asyncio event loop; frames are paced on a fixed grid."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        *,
        frame_interval_ms: float = DEFAULT_FRAME_INTERVAL_MS,
    ) -> None:
        self.loop = loop or asyncio.get_running_loop()
        self.frame_interval_ms = frame_interval_ms

    def now(self) -> float:
        return self.loop.time() * 1000

    def call_soon(self, callback: Callback) -> asyncio.Handle:
        return self.loop.call_soon(callback)

    def call_later(self, delay_ms: float, callback: Callback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000, callback)

    def request_frame(self, callback: Callback) -> asyncio.TimerHandle:
        interval = self.frame_interval_ms
        boundary = (math.floor(self.now() / interval) + 1) * interval
        return self.loop.call_at(boundary / 1000, callback)


class WorkQueue:
    """Insertion-ordered set of elements, deduplicated by identity."""

    def __init__(self, nodes: Iterable[Element] = ()) -> None:
        self._items: Dict[Element, None] = {}
        self.extend(nodes)

    def push(self, node: Element) -> bool:
        if node in self._items:
            return False
        self._items[node] = None
        return True

    def extend(self, nodes: Iterable[Element]) -> int:
        return sum(1 for node in nodes if self.push(node))

    def popleft(self) -> Element:
        node = next(iter(self._items))
        del self._items[node]
        return node

    def clear(self) -> None:
        self._items.clear()

    def __contains__(self, node: object) -> bool:
        return node in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[Element]:
        return iter(list(self._items))


class SchedulerState(Enum):
    IDLE = auto()
    SCHEDULING = auto()
    SLICING = auto()
    DISABLED = auto()


class BatchScheduler:
    """Drains a work queue in frame-paced slices bounded by a time budget."""

    def __init__(
        self,
        host: Host,
        process: Callable[[Element], None],
        *,
        slice_budget_ms: float,
    ) -> None:
        self.host = host
        self.process = process
        self.slice_budget_ms = slice_budget_ms
        self.queue = WorkQueue()
        self.state = SchedulerState.IDLE
        self.slices_run = 0
        self._frame: Optional[Cancellable] = None
        self._in_slice = False

    @property
    def busy(self) -> bool:
        return self.state in (SchedulerState.SCHEDULING, SchedulerState.SLICING)

    def run(self, nodes: Iterable[Element]) -> bool:
        """Start a batch; returns False when one is in flight or nothing is queued."""

        if self.state is not SchedulerState.IDLE:
            logger.debug("Batch request ignored while scheduler is %s.", self.state.name)
            return False

        self.queue.extend(nodes)
        if not self.queue:
            return False

        logger.debug("Scheduling batch of %d nodes.", len(self.queue))
        self.state = SchedulerState.SCHEDULING
        self._frame = self.host.request_frame(self._run_slice)
        return True

    def cancel(self) -> None:
        """Stop slicing; a slice that is already running is allowed to finish."""

        self.state = SchedulerState.DISABLED
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None
        if not self._in_slice:
            self.queue.clear()

    def resume(self) -> None:
        if self.state is SchedulerState.DISABLED:
            self.queue.clear()
            self.state = SchedulerState.IDLE

    def _run_slice(self) -> None:
        self._frame = None
        if self.state is SchedulerState.DISABLED:
            return

        self.state = SchedulerState.SLICING
        self._in_slice = True
        self.slices_run += 1
        started = self.host.now()
        handled = 0
        try:
            while self.queue and (
                handled == 0 or self.host.now() - started < self.slice_budget_ms
            ):
                node = self.queue.popleft()
                handled += 1
                if not node.is_connected:
                    continue
                self.process(node)
        except Exception:
            self.queue.clear()
            if self.state is not SchedulerState.DISABLED:
                self.state = SchedulerState.IDLE
            raise
        finally:
            self._in_slice = False

        if self.state is SchedulerState.DISABLED:
            self.queue.clear()
            return
        if self.queue:
            logger.debug(
                "Slice handled %d nodes, %d remaining; yielding.", handled, len(self.queue)
            )
            self.state = SchedulerState.SCHEDULING
            self._frame = self.host.request_frame(self._run_slice)
        else:
            self.state = SchedulerState.IDLE
