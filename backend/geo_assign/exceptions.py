"""
exceptions.py - Domain errors raised by the assignment service.

Lookup failures and "point not contained" are deliberately absent: both
are normal outcomes that route a report to the manual-assignment queue.
"""

from __future__ import annotations

from typing import Any, Optional


class AssignmentError(Exception):
    """Base class for all assignment-service errors."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (Context: {context_str})"
        return self.message


class BoundaryDataError(AssignmentError):
    """
    A boundary file could not be turned into a usable feature collection.

    Raised when:
    - the file is missing or is not valid JSON
    - a feature lacks a required property (state / seat name)
    - a feature carries a geometry other than Polygon or MultiPolygon
    """


class ReportNotFoundError(AssignmentError):
    """The report id does not exist."""


class AssignmentPendingError(AssignmentError):
    """Approval refused because constituency assignment is still pending."""


class ReportAlreadyApprovedError(AssignmentError):
    """Approval refused because the report is already approved."""
