"""Text extraction and the weak per-element cache."""

from __future__ import annotations

import weakref
from typing import Optional

from .dom import Element
from .structures import NodeRecord

FORM_TEXT_TAGS = frozenset({"input", "textarea"})


class NodeCache:
    """Per-element records keyed by identity that never keep an element alive."""

    def __init__(self) -> None:
        self._records: "weakref.WeakKeyDictionary[Element, NodeRecord]" = (
            weakref.WeakKeyDictionary()
        )

    def record(self, node: Element) -> NodeRecord:
        record = self._records.get(node)
        if record is None:
            record = NodeRecord()
            self._records[node] = record
        return record

    def get(self, node: Element) -> Optional[NodeRecord]:
        return self._records.get(node)

    def cached_text(self, node: Element) -> Optional[str]:
        record = self._records.get(node)
        return record.cached_text if record is not None else None

    def store_text(self, node: Element, text: str) -> None:
        record = self.record(node)
        if record.cached_text != text:
            record.processed = False
        record.cached_text = text

    def mark_processed(self, node: Element) -> None:
        self.record(node).processed = True

    def is_processed(self, node: Element) -> bool:
        record = self._records.get(node)
        return record is not None and record.processed

    def is_fresh(self, node: Element, text: str) -> bool:
        """True when the element was processed against exactly this text."""

        record = self._records.get(node)
        return (
            record is not None
            and record.processed
            and record.cached_text is not None
            and record.cached_text == text
        )

    def invalidate(self, node: Element) -> None:
        self._records.pop(node, None)

    def clear(self) -> None:
        self._records.clear()

    def __contains__(self, node: object) -> bool:
        return node in self._records

    def __len__(self) -> int:
        return len(self._records)


def read_text(node: Element) -> str:
    """Return the text an element presents, without touching any cache."""

    if node.tag in FORM_TEXT_TAGS:
        return f"{node.value or ''} {node.placeholder or ''}"
    return node.text_content or ""


class TextExtractor:
    """Reads element text and records it in the cache."""

    def __init__(self, cache: NodeCache) -> None:
        self.cache = cache

    def read(self, node: Element) -> str:
        return read_text(node)

    def extract(self, node: Element) -> str:
        text = read_text(node)
        self.cache.store_text(node, text)
        return text
