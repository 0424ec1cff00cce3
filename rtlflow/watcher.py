"""Mutation watching with debounced, coalesced forwarding of affected nodes."""

from __future__ import annotations

import logging
from enum import Enum, auto
from typing import Callable, Dict, Iterable, List, Optional

from .dom import Document, Element, MutationObserver, MutationRecord
from .extractor import NodeCache
from .scheduler import Cancellable, Host
from .selector import categorize

logger = logging.getLogger(__name__)

WATCHED_ATTRIBUTES = ("value", "placeholder", "contenteditable")


class DebounceState(Enum):
    IDLE = auto()
    PENDING = auto()
    FLUSHING = auto()


class Debouncer:
    """Accumulates elements and flushes them once a quiet period has elapsed."""

    def __init__(
        self,
        host: Host,
        delay_ms: float,
        flush: Callable[[List[Element]], None],
    ) -> None:
        self.host = host
        self.delay_ms = delay_ms
        self.flush = flush
        self.state = DebounceState.IDLE
        self._pending: Dict[Element, None] = {}
        self._timer: Optional[Cancellable] = None

    def push(self, nodes: Iterable[Element]) -> None:
        for node in nodes:
            self._pending[node] = None
        if self._timer is not None:
            self._timer.cancel()
        self.state = DebounceState.PENDING
        self._timer = self.host.call_later(self.delay_ms, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()
        self.state = DebounceState.IDLE

    def _fire(self) -> None:
        self._timer = None
        nodes, self._pending = list(self._pending), {}
        self.state = DebounceState.FLUSHING
        try:
            if nodes:
                self.flush(nodes)
        finally:
            self.state = DebounceState.IDLE


class ChangeWatcher:
    """Turns tree mutations into the minimal set of elements to reprocess."""

    def __init__(
        self,
        document: Document,
        host: Host,
        cache: NodeCache,
        *,
        delay_ms: float,
        accepting: Callable[[], bool],
        forward: Callable[[List[Element]], None],
    ) -> None:
        self.document = document
        self.cache = cache
        self.accepting = accepting
        self.debouncer = Debouncer(host, delay_ms, forward)
        self.observer: Optional[MutationObserver] = None
        self.dropped_batches = 0

    @property
    def subscribed(self) -> bool:
        return self.observer is not None

    def subscribe(self) -> None:
        """Start observing the whole document; calling it twice is a no-op."""

        if self.observer is not None:
            return
        observer = MutationObserver(self.handle_mutations)
        observer.observe(
            self.document,
            child_list=True,
            subtree=True,
            character_data=True,
            attributes=True,
            attribute_filter=WATCHED_ATTRIBUTES,
        )
        self.observer = observer

    def unsubscribe(self) -> None:
        if self.observer is not None:
            self.observer.disconnect()
            self.observer = None
        self.debouncer.cancel()

    def cancel_pending(self) -> None:
        self.debouncer.cancel()

    def handle_mutations(self, records: List[MutationRecord]) -> None:
        if not self.accepting():
            self.dropped_batches += 1
            logger.debug("Dropped a batch of %d mutation records.", len(records))
            return
        affected = self.affected_nodes(records)
        self.debouncer.push(affected)

    def affected_nodes(self, records: Iterable[MutationRecord]) -> List[Element]:
        affected: Dict[Element, None] = {}
        for record in records:
            if record.type == "childList":
                parent = record.target
                # Insertions and removals change the parent's own text.
                if isinstance(parent, Element) and categorize(parent) is not None:
                    self.cache.invalidate(parent)
                    affected[parent] = None
                for node in record.added_nodes:
                    if not isinstance(node, Element):
                        continue
                    if categorize(node) is not None:
                        affected[node] = None
                    for child in node.iter_elements():
                        if categorize(child) is not None:
                            affected[child] = None
            elif record.type in ("characterData", "attributes"):
                target = record.target
                element = target if isinstance(target, Element) else target.parent_element
                if element is None:
                    continue
                self.cache.invalidate(element)
                affected[element] = None
        return list(affected)
