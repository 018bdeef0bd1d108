"""Pydantic v2 schemas for report, assignment and reference operations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from geo_assign.config import MAX_NAME_LENGTH
from geo_assign.models import ApprovalStatus, AssignmentStatus

# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class ReportCreate(BaseModel):
    """Coordinates of a newly submitted report."""

    model_config = ConfigDict(str_strip_whitespace=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    location_name: str = Field(default="", max_length=200)


class ReportResponse(BaseModel):
    """A report with its current constituency assignment."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    location_name: str
    latitude: float
    longitude: float
    state: str
    constituency: str
    parliamentary_constituency: str
    mla: str
    mp: str
    assignment_status: AssignmentStatus
    approval_status: ApprovalStatus
    created_at: datetime


class ResolveResponse(BaseModel):
    report_id: int
    outcome: str
    handled: bool


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


class AssignmentOverride(BaseModel):
    """
    Administrator-supplied constituency assignment.

    Surrounding whitespace is stripped before the length checks, so a
    whitespace-only state or constituency is rejected.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    state: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    constituency: str = Field(min_length=1, max_length=MAX_NAME_LENGTH)
    parliamentary_constituency: str | None = Field(default=None, max_length=MAX_NAME_LENGTH)


class OverrideResponse(BaseModel):
    report_id: int
    state: str
    constituency: str
    parliamentary_constituency: str
    mla: str
    mp: str
    mla_party: str | None = None
    mp_party: str | None = None
    assignment_status: AssignmentStatus


class AssignmentStats(BaseModel):
    """Report count per assignment status."""

    auto_assigned: int = 0
    pending_manual: int = 0
    manually_assigned: int = 0


class PendingAssignmentsResponse(BaseModel):
    reports: list[ReportResponse]
    stats: AssignmentStats


class BatchResponse(BaseModel):
    processed: int
    assigned: int


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------


class RepresentativeResponse(BaseModel):
    name: str
    party: str = ""
    email: str | None = None
    constituency: str
