"""Target discovery: which elements are eligible for classification."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Union

from .dom import Document, Element, Node
from .errors import ErrorCategory
from .extractor import NodeCache, TextExtractor
from .policy import ErrorPolicy
from .structures import TagCategory

logger = logging.getLogger(__name__)

TAG_CATEGORIES: Dict[str, TagCategory] = {
    "p": TagCategory.PARAGRAPH,
    "h1": TagCategory.HEADING,
    "h2": TagCategory.HEADING,
    "h3": TagCategory.HEADING,
    "h4": TagCategory.HEADING,
    "h5": TagCategory.HEADING,
    "h6": TagCategory.HEADING,
    "span": TagCategory.SPAN,
    "a": TagCategory.LINK,
    "input": TagCategory.INPUT,
    "textarea": TagCategory.INPUT,
    "label": TagCategory.LABEL,
    "button": TagCategory.BUTTON,
    "td": TagCategory.TABLE_CELL,
    "th": TagCategory.TABLE_CELL,
    "li": TagCategory.LIST_ITEM,
}

CODE_LIKE_TAGS = frozenset({"code", "pre", "script", "style", "noscript"})
CONTAINER_TAGS = frozenset({"div"})
SENSITIVE_INPUT_TYPES = frozenset({"password", "email", "url"})
SKIP_ATTRIBUTE = "data-rtl-skip"
SKIP_CLASS = "rtl-skip"
HIDDEN_VISIBILITY = frozenset({"hidden", "collapse"})

StyleMap = Dict[str, str]


def is_editable(element: Element) -> bool:
    value = element.get_attribute("contenteditable")
    return value is not None and value.strip().lower() in ("", "true")


def has_ltr_override(element: Element) -> bool:
    value = element.get_attribute("dir")
    return value is not None and value.strip().lower() == "ltr"


def categorize(element: Element) -> Optional[TagCategory]:
    """Map an element to its semantic category, or None if it is not a target."""

    category = TAG_CATEGORIES.get(element.tag)
    if category is not None:
        return category
    if is_editable(element):
        if element.tag in CONTAINER_TAGS:
            return TagCategory.CONTAINER
        return TagCategory.EDITABLE
    return None


def _opted_out(element: Element) -> bool:
    return element.has_attribute(SKIP_ATTRIBUTE) or SKIP_CLASS in element.class_list


def _blocks_subtree(element: Element) -> bool:
    return element.tag in CODE_LIKE_TAGS or _opted_out(element)


def _skipped_itself(element: Element) -> bool:
    if _blocks_subtree(element):
        return True
    if element.tag in CONTAINER_TAGS and not is_editable(element):
        return True
    if element.tag == "input":
        input_type = (element.get_attribute("type") or "text").strip().lower()
        if input_type in SENSITIVE_INPUT_TYPES:
            return True
    return False


def is_skipped(element: Element) -> bool:
    """Code blocks, plain containers, opted-out and sensitive elements are skipped."""

    if _skipped_itself(element):
        return True
    # Opting out or being code applies to the whole subtree.
    return any(_blocks_subtree(ancestor) for ancestor in element.ancestors())


def _parse_opacity(value: Optional[str]) -> float:
    try:
        return float(value) if value is not None else 1.0
    except ValueError:
        return 1.0


def _displayed(style: Optional[StyleMap]) -> bool:
    return style is None or style.get("display") != "none"


def _shown(element: Element, style: Optional[StyleMap]) -> bool:
    if element.layout is not None and not any(element.layout):
        return False
    if style is None:
        return True
    if style.get("display") == "none":
        return False
    if style.get("visibility") in HIDDEN_VISIBILITY:
        return False
    return _parse_opacity(style.get("opacity")) != 0


class TargetSelector:
    """Finds eligible elements and filters out skipped, hidden or unchanged ones."""

    def __init__(
        self,
        cache: NodeCache,
        extractor: TextExtractor,
        policy: ErrorPolicy,
    ) -> None:
        self.cache = cache
        self.extractor = extractor
        self.policy = policy

    def discover(self, root: Union[Document, Element]) -> List[Element]:
        """Walk root once, pruning skipped and undisplayed subtrees."""

        targets: List[Element] = []
        if isinstance(root, Document):
            for child in root.children:
                if isinstance(child, Element):
                    self._walk(child, None, targets)
            return targets

        ancestors = list(root.ancestors())
        if any(_blocks_subtree(ancestor) for ancestor in ancestors):
            return targets
        if not all(_displayed(self._style_of(ancestor)) for ancestor in ancestors):
            return targets
        parent = root.parent_element
        self._walk(root, self._style_of(parent) if parent is not None else None, targets)
        return targets

    def filter(self, nodes: Iterable[Node]) -> List[Element]:
        return [
            node
            for node in nodes
            if isinstance(node, Element) and node.is_connected and self.accepts(node)
        ]

    def accepts(self, element: Element) -> bool:
        if categorize(element) is None or is_skipped(element):
            return False
        if not self.is_visible(element):
            return False
        return not self.is_unchanged(element)

    def is_unchanged(self, element: Element) -> bool:
        """True when the element was processed with its current text and direction."""

        record = self.cache.get(element)
        if record is None or not record.processed:
            return False
        if record.ltr_override != has_ltr_override(element):
            return False
        return self.cache.is_fresh(element, self.extractor.read(element))

    def is_visible(self, element: Element) -> bool:
        if not _shown(element, self._style_of(element)):
            return False
        return all(_displayed(self._style_of(ancestor)) for ancestor in element.ancestors())

    def _walk(
        self,
        element: Element,
        parent_style: Optional[StyleMap],
        targets: List[Element],
    ) -> None:
        if _blocks_subtree(element):
            return
        style = self._style_of(element, parent_style)
        if not _displayed(style):
            return
        if (
            categorize(element) is not None
            and not _skipped_itself(element)
            and _shown(element, style)
            and not self.is_unchanged(element)
        ):
            targets.append(element)
        for child in element.children:
            if isinstance(child, Element):
                self._walk(child, style, targets)

    def _style_of(
        self,
        element: Element,
        parent_style: Optional[StyleMap] = None,
    ) -> Optional[StyleMap]:
        """Computed style of an element, or None when it cannot be read."""

        document = element.owner_document
        if document is None:
            return None
        try:
            return document.computed_style(element, parent_style)
        except Exception as exc:
            self.policy.handle_error(
                ErrorCategory.ACCESS,
                f"Could not determine visibility of {element!r}; assuming visible.",
                str(exc),
            )
            return None
