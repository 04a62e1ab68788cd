"""
Exception hierarchy for the codex rules engine.

Evaluation never lets these escape to the caller: the parser and the
loadout generator catch their internal errors and report them as values
(unknown classifications, skipped options). Only explicit file loaders
raise to the caller.
"""

from __future__ import annotations

from typing import Any


class CodexEngineError(Exception):
    """Base exception for all codex engine errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary of additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize the error.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RegistryLoadError(CodexEngineError):
    """A core or faction ability registry document is missing or malformed."""
    pass


class MalformedNumericTokenError(CodexEngineError, ValueError):
    """A count in wargear option text could not be read as a number.

    Attributes:
        token: The offending token as it appeared in the text
    """

    def __init__(self, token: str, details: dict[str, Any] | None = None):
        super().__init__(f"Cannot read '{token}' as a number", details)
        self.token = token


class BranchingLimitError(CodexEngineError):
    """A wargear option would expand loadouts past the configured bound.

    Attributes:
        option_line: Line number of the offending option, if known
        limit: The bound that was exceeded
        attempted: How many branches/loadouts the option tried to create
    """

    def __init__(
        self,
        message: str,
        limit: int,
        attempted: int,
        option_line: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.limit = limit
        self.attempted = attempted
        self.option_line = option_line
