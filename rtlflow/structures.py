"""Core data structures for the rtlflow engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class TagCategory(str, Enum):
    """Semantic kind of an eligible element."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    SPAN = "span"
    LINK = "link"
    INPUT = "input"
    EDITABLE = "editable"
    LABEL = "label"
    BUTTON = "button"
    TABLE_CELL = "table-cell"
    LIST_ITEM = "list-item"
    CONTAINER = "container"


# Categories styled whenever any right-to-left letter is present.
ALWAYS_CHECK_CATEGORIES = frozenset(
    {
        TagCategory.PARAGRAPH,
        TagCategory.HEADING,
        TagCategory.LINK,
        TagCategory.SPAN,
    }
)


@dataclass(frozen=True)
class EngineConfig:
    """Immutable per-engine settings."""

    rtl_threshold: float = 0.3
    debounce_delay_ms: float = 150.0
    slice_budget_ms: float = 16.0
    visual_feedback: bool = True
    iframe_handling: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.rtl_threshold <= 1.0:
            raise ValueError("rtl_threshold must be between 0 and 1.")
        if self.debounce_delay_ms < 0 or self.slice_budget_ms <= 0:
            raise ValueError("Timing settings must be positive.")


@dataclass
class NodeRecord:
    """Weakly held per-element state; dropped together with its element."""

    category: Optional[TagCategory] = None
    cached_text: Optional[str] = None
    processed: bool = False
    # dir="ltr" as seen when the element was last processed.
    ltr_override: bool = False


@dataclass
class Stats:
    """Summary of the elements currently carrying applied styling."""

    total_processed: int = 0
    average_ratio: float = 0.0
    categories: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CommandResponse:
    """Reply sent back across the command protocol."""

    success: bool
    stats: Optional[Stats] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.stats is not None:
            payload["stats"] = self.stats.to_dict()
        if self.error is not None:
            payload["error"] = self.error
        return payload
