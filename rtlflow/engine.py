"""High-level orchestration of discovery, classification and styling."""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from typing import Callable, Iterator, List, Optional, Tuple, Union

from .classifier import is_classifiable, rtl_ratio
from .dom import Document, Element, IFrameElement
from .errors import DocumentAccessError, ErrorCategory
from .extractor import NodeCache, TextExtractor
from .policy import ErrorPolicy
from .scheduler import BatchScheduler, Host
from .selector import TargetSelector, categorize, has_ltr_override
from .structures import ALWAYS_CHECK_CATEGORIES, EngineConfig, Stats
from .styling import StyleApplicator, applied_ratio, is_styled
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class Engine:
    """Keeps right-to-left styling of one document in sync with its content.

    One engine owns one document context. Same-origin embedded documents get
    their own child engines, created with frame handling switched off so that
    delegation never recurses.
    """

    def __init__(
        self,
        document: Document,
        host: Host,
        config: Optional[EngineConfig] = None,
        *,
        policy: Optional[ErrorPolicy] = None,
    ) -> None:
        self.document = document
        self.host = host
        self.config = config or EngineConfig()
        self.policy = policy or ErrorPolicy()

        self.cache = NodeCache()
        self.extractor = TextExtractor(self.cache)
        self.selector = TargetSelector(self.cache, self.extractor, self.policy)
        self.styler = StyleApplicator(self.config, self.cache)
        self.scheduler = BatchScheduler(
            host,
            self.process_node,
            slice_budget_ms=self.config.slice_budget_ms,
        )
        self.watcher = ChangeWatcher(
            document,
            host,
            self.cache,
            delay_ms=self.config.debounce_delay_ms,
            accepting=self._accepting_mutations,
            forward=self._process_changes,
        )

        self.enabled = True
        self.started = False
        self.destroyed = False
        self.degraded = False
        self.children: List[Engine] = []
        self._frame_listeners: List[Tuple[IFrameElement, Callable[[], None]]] = []

    # --- Lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Initialise once the document has been parsed."""

        if self.started or self.destroyed:
            return
        self.started = True
        if self.document.ready_state == "loading":
            self.document.add_event_listener("DOMContentLoaded", self._initialise)
        else:
            self._initialise()

    def enable(self) -> None:
        if self.destroyed:
            return
        self.enabled = True
        self.scheduler.resume()
        if not self.started:
            self.start()
        else:
            self.scan()
        for child in self.children:
            child.enable()
        logger.info("Right-to-left correction enabled for %s.", self.document.url)

    def disable(self) -> None:
        self.enabled = False
        self.watcher.cancel_pending()
        self.scheduler.cancel()
        self.styler.remove_all(self.document)
        for child in self.children:
            child.disable()
        logger.info("Right-to-left correction disabled for %s.", self.document.url)

    def destroy(self) -> None:
        self.disable()
        self.watcher.unsubscribe()
        self.document.remove_event_listener("DOMContentLoaded", self._initialise)
        for frame, listener in self._frame_listeners:
            frame.remove_event_listener("load", listener)
        self._frame_listeners.clear()
        for child in self.children:
            child.destroy()
        self.children.clear()
        self.cache.clear()
        self.destroyed = True
        logger.info("Right-to-left engine for %s destroyed.", self.document.url)

    # --- Scanning ----------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self.scheduler.busy

    def scan(self, root: Union[Document, Element, None] = None) -> bool:
        """Discover targets under root and start a batch; False if nothing started."""

        if not self.enabled or self.scheduler.busy:
            return False
        try:
            targets = self.selector.discover(root if root is not None else self.document)
            return self.scheduler.run(targets)
        except Exception as exc:
            self.policy.handle_error(
                ErrorCategory.NODE,
                f"Scanning {self.document.url} failed.",
                str(exc),
            )
            return False

    def process_node(self, element: Element) -> None:
        """Classify one element and style or unstyle it accordingly."""

        try:
            text = self.extractor.extract(element)
            record = self.cache.record(element)
            record.category = categorize(element)
            record.ltr_override = has_ltr_override(element)
            if not is_classifiable(text):
                if is_styled(element):
                    self.styler.revert(element)
                return

            ratio = rtl_ratio(text)
            if self.qualifies(element, ratio):
                self.styler.apply(element, ratio)
            elif is_styled(element):
                self.styler.revert(element)
            self.cache.mark_processed(element)
        except Exception as exc:
            self.cache.invalidate(element)
            self.policy.handle_error(
                ErrorCategory.NODE,
                f"Could not process {element!r}; it will be retried on the next scan.",
                str(exc),
            )

    def qualifies(self, element: Element, ratio: float) -> bool:
        if has_ltr_override(element):
            return False
        if categorize(element) in ALWAYS_CHECK_CATEGORIES and ratio > 0:
            return True
        return ratio >= self.config.rtl_threshold

    def _initialise(self) -> None:
        self.document.remove_event_listener("DOMContentLoaded", self._initialise)
        self.scan()

        try:
            self.watcher.subscribe()
        except Exception as exc:
            self.degraded = True
            self.policy.handle_error(
                ErrorCategory.SETUP,
                "Could not watch the document for changes; only manual scans will run.",
                str(exc),
            )

        if self.config.iframe_handling:
            self.delegate_frames()
        logger.info("Right-to-left engine initialised for %s.", self.document.url)

    def _accepting_mutations(self) -> bool:
        return self.enabled and not self.scheduler.busy

    def _process_changes(self, nodes: List[Element]) -> None:
        if not self._accepting_mutations():
            return
        try:
            self.scheduler.run(self.selector.filter(nodes))
        except Exception as exc:
            self.policy.handle_error(
                ErrorCategory.NODE,
                "Could not process changed elements.",
                str(exc),
            )

    # --- Embedded documents ------------------------------------------------

    def delegate_frames(self) -> int:
        """Attach a child engine to every reachable same-origin frame."""

        child_config = dataclasses.replace(self.config, iframe_handling=False)
        attached = 0
        for frame in list(self.document.iter_elements()):
            if not isinstance(frame, IFrameElement):
                continue
            try:
                frame_document = frame.content_document
            except DocumentAccessError as exc:
                self.policy.handle_error(
                    ErrorCategory.ACCESS,
                    "Skipping an inaccessible frame (likely cross-origin).",
                    str(exc),
                )
                continue
            if frame_document is None:
                continue

            child = Engine(frame_document, self.host, child_config)
            if not self.enabled:
                child.enabled = False
            self.children.append(child)

            def _on_load(child: Engine = child) -> None:
                if child.started:
                    child.scan()
                else:
                    child.start()

            frame.add_event_listener("load", _on_load)
            self._frame_listeners.append((frame, _on_load))
            if frame_document.ready_state == "complete":
                _on_load()
            attached += 1
        return attached

    # --- Statistics --------------------------------------------------------

    def styled_elements(self, *, include_frames: bool = False) -> Iterator[Element]:
        for element in self.document.iter_elements():
            if is_styled(element):
                yield element
        if include_frames:
            for child in self.children:
                yield from child.styled_elements(include_frames=True)

    def get_stats(self, *, include_frames: bool = False) -> Stats:
        """Recompute statistics from the elements that currently carry styling."""

        ratios: List[float] = []
        categories: Counter = Counter()
        for element in self.styled_elements(include_frames=include_frames):
            ratios.append(applied_ratio(element) or 0.0)
            record = self.cache.get(element)
            category = record.category if record is not None else categorize(element)
            categories[category.value if category is not None else element.tag] += 1

        average = round(sum(ratios) / len(ratios), 2) if ratios else 0.0
        return Stats(
            total_processed=len(ratios),
            average_ratio=average,
            categories=dict(categories),
        )
