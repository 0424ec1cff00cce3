"""Error handling policy implementation."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .errors import ErrorCategory, ErrorRecord

logger = logging.getLogger(__name__)

LOG_LEVELS: Dict[ErrorCategory, int] = {
    ErrorCategory.ACCESS: logging.DEBUG,
    ErrorCategory.NODE: logging.WARNING,
    ErrorCategory.SETUP: logging.ERROR,
    ErrorCategory.COMMAND: logging.ERROR,
}


class ErrorPolicy:
    """Records handled errors and logs them; no category is ever fatal."""

    MAX_RECORDS = 200

    def __init__(self) -> None:
        self.records: List[ErrorRecord] = []

    def handle_error(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> ErrorRecord:
        """Record an error and log it at the level its category calls for."""

        record = ErrorRecord(category=category, message=message, details=details)
        self.records.append(record)
        if len(self.records) > self.MAX_RECORDS:
            del self.records[0]

        if details:
            logger.log(LOG_LEVELS[category], "%s (%s)", message, details)
        else:
            logger.log(LOG_LEVELS[category], "%s", message)
        return record

    def count(self, category: ErrorCategory) -> int:
        return sum(1 for record in self.records if record.category is category)

    def clear(self) -> None:
        self.records.clear()
