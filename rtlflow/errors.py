"""Error definitions for the rtlflow engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categorises handled errors so the policy can pick a log level."""

    ACCESS = auto()
    NODE = auto()
    SETUP = auto()
    COMMAND = auto()


class RtlFlowError(Exception):
    """Base exception for all custom errors."""


class DocumentAccessError(RtlFlowError):
    """Raised when an embedded document or computed style cannot be read."""


class ConfigurationError(RtlFlowError):
    """Raised when the engine configuration is invalid or unreadable."""


class UnknownCommandError(RtlFlowError):
    """Raised when the command protocol receives an unsupported action."""


class OverwriteRefusedError(RtlFlowError):
    """Raised when attempting to overwrite an output without consent."""


@dataclass
class ErrorRecord:
    """Stores context for a handled error."""

    category: ErrorCategory
    message: str
    details: Optional[str] = None
