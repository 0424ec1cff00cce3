"""Idempotent application and reversal of right-to-left styling."""

from __future__ import annotations

import logging
import weakref
from typing import Dict, Optional, Union

from .dom import Document, Element
from .extractor import NodeCache
from .selector import categorize, has_ltr_override
from .structures import EngineConfig, TagCategory

logger = logging.getLogger(__name__)

APPLIED_ATTRIBUTE = "data-rtl-applied"
RATIO_ATTRIBUTE = "data-arabic-ratio"
STYLED_PROPERTIES = ("text-align", "direction", "unicode-bidi", "transition")
TRANSITION = "all 0.3s ease"
RATIO_TOLERANCE = 0.01


def is_styled(element: Element) -> bool:
    return element.get_attribute(APPLIED_ATTRIBUTE) == "true"


def applied_ratio(element: Element) -> Optional[float]:
    raw = element.get_attribute(RATIO_ATTRIBUTE)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def best_text_align(category: Optional[TagCategory]) -> str:
    if category is TagCategory.BUTTON:
        return "center"
    if category is TagCategory.TABLE_CELL:
        return "inherit"
    return "right"


class StyleApplicator:
    """Sets and removes the presentation attributes produced by classification."""

    def __init__(self, config: EngineConfig, cache: NodeCache) -> None:
        self.config = config
        self.cache = cache
        # Author values overwritten by apply(), restored by revert().
        self._saved: "weakref.WeakKeyDictionary[Element, Dict[str, Optional[str]]]" = (
            weakref.WeakKeyDictionary()
        )

    def apply(self, element: Element, ratio: float) -> bool:
        """Style an element; returns False when nothing had to change."""

        if has_ltr_override(element):
            return False

        existing = applied_ratio(element)
        if existing is not None and abs(existing - ratio) < RATIO_TOLERANCE:
            return False

        category = categorize(element)
        styles: Dict[str, str] = {"text-align": best_text_align(category)}
        if category is TagCategory.CONTAINER:
            styles["unicode-bidi"] = "plaintext"
        else:
            styles["direction"] = "rtl"
            styles["unicode-bidi"] = "embed"
        if self.config.visual_feedback:
            styles["transition"] = TRANSITION

        if element not in self._saved:
            self._saved[element] = {
                name: element.style.get(name) for name in STYLED_PROPERTIES
            }
        for name, value in styles.items():
            element.style.set(name, value)

        element.set_attribute(APPLIED_ATTRIBUTE, "true")
        element.set_attribute(RATIO_ATTRIBUTE, f"{ratio:.2f}")
        return True

    def revert(self, element: Element) -> bool:
        """Undo styling on one element, restoring the author's inline values."""

        if not is_styled(element) and not element.has_attribute(RATIO_ATTRIBUTE):
            return False

        saved = self._saved.pop(element, None)
        for name in STYLED_PROPERTIES:
            element.style.set(name, saved.get(name) if saved else None)
        element.remove_attribute(APPLIED_ATTRIBUTE)
        element.remove_attribute(RATIO_ATTRIBUTE)
        return True

    def remove_all(self, root: Union[Document, Element]) -> int:
        """Revert every styled element below root and forget their cache entries."""

        reverted = 0
        for element in list(root.iter_elements()):
            if not is_styled(element):
                continue
            self.revert(element)
            self.cache.invalidate(element)
            reverted += 1
        logger.debug("Removed right-to-left styling from %d elements.", reverted)
        return reverted
