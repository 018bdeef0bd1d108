"""
assignment.py - Constituency assignment state machine.

Responsibilities:
    - Automatic resolution of a report: containment -> name normalisation
      -> MLA and MP lookups -> status decision -> one conditional write.
    - Backfilling reports that were never touched by automatic resolution.
    - Administrator overrides, which always win and are never undone by
      automatic processing.
    - Status counts, the pending queue and the approval gate.

Status transitions:
    pending_manual    -> auto_assigned      both representatives found
    pending_manual    -> pending_manual     containment or a lookup failed
    any               -> manually_assigned  administrator override
    manually_assigned -> (nothing)          automatic runs are no-ops

The automatic path never raises into its caller: report creation must not
fail because a constituency could not be resolved.

Known race: the conditional UPDATE protects a manual assignment that is
already committed, but an override that commits between the guard read
and the write is not serialised beyond the database's own row update.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from geo_assign.boundaries import BoundaryIndex, Containment, locate
from geo_assign.config import MAX_NAME_LENGTH, PENDING_SENTINEL
from geo_assign.exceptions import (
    AssignmentPendingError,
    ReportAlreadyApprovedError,
    ReportNotFoundError,
)
from geo_assign.models import ApprovalStatus, AssignmentStatus, Report
from geo_assign.naming import normalize_constituency_name
from geo_assign.representatives import RepresentativeMatch, find_mla, find_mp
from geo_assign.schemas import AssignmentOverride

logger = logging.getLogger(__name__)


class AssignmentOutcome(str, enum.Enum):
    """Result of one automatic resolution attempt."""

    AUTO_ASSIGNED = "auto_assigned"
    PENDING_MANUAL = "pending_manual"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"

    @property
    def handled(self) -> bool:
        """True when the report needs no further automatic attention."""
        return self in (AssignmentOutcome.AUTO_ASSIGNED, AssignmentOutcome.SKIPPED)


@dataclass(frozen=True)
class BatchResult:
    processed: int
    assigned: int


@dataclass(frozen=True)
class OverrideResult:
    report: Report
    mla: Optional[RepresentativeMatch]
    mp: Optional[RepresentativeMatch]


# ── Automatic resolution ──────────────────────────────────────────────────────

def _safe_lookup(
    label: str,
    finder: Callable[[Session, str, str], Optional[RepresentativeMatch]],
    session: Session,
    state: str,
    seat: str,
) -> Optional[RepresentativeMatch]:
    try:
        return finder(session, state, seat)
    except Exception:
        logger.exception("%s lookup failed for %s, %s", label, seat, state)
        return None


def _safe_locate(lat: float, lng: float, boundaries: BoundaryIndex) -> Containment:
    try:
        return locate(lat=lat, lng=lng, index=boundaries)
    except Exception:
        logger.exception("Containment failed for (%.6f, %.6f)", lat, lng)
        return Containment()


def _fit_column(field_name: str, value: str) -> str:
    if len(value) > MAX_NAME_LENGTH:
        logger.warning(
            "Truncating %s to %d characters before storing: %r", field_name, MAX_NAME_LENGTH, value
        )
        return value[:MAX_NAME_LENGTH]
    return value


def derive_assignment(
    session: Session, lat: float, lng: float, boundaries: BoundaryIndex
) -> dict[str, Any]:
    """
    Compute the assignment fields for a coordinate without writing them.

    Whatever could be resolved is returned even when a representative is
    missing, so a partially resolved report still shows its state and seat
    names in the admin queue.

    Returns:
        Column values for Report, always including "mla", "mp" and
        "assignment_status".
    """
    containment = _safe_locate(lat, lng, boundaries)
    values: dict[str, Any] = {}
    state: Optional[str] = None
    mla: Optional[RepresentativeMatch] = None
    mp: Optional[RepresentativeMatch] = None

    if containment.assembly is not None:
        state = containment.assembly.state
        constituency = normalize_constituency_name(containment.assembly.name)
        values["state"] = _fit_column("state", state or "")
        values["constituency"] = _fit_column("constituency", constituency)
        mla = _safe_lookup("MLA", find_mla, session, state or "", constituency)
    else:
        logger.info("No assembly constituency contains (%.6f, %.6f)", lat, lng)

    if containment.parliamentary is not None:
        pc_name = containment.parliamentary.name
        values["parliamentary_constituency"] = _fit_column("parliamentary_constituency", pc_name)
        pc_state = state or containment.parliamentary.state or ""
        mp = _safe_lookup("MP", find_mp, session, pc_state, pc_name)
    else:
        logger.info("No parliamentary constituency contains (%.6f, %.6f)", lat, lng)

    values["mla"] = mla.name if mla else ""
    values["mp"] = mp.name if mp else ""
    values["assignment_status"] = (
        AssignmentStatus.AUTO_ASSIGNED if mla and mp else AssignmentStatus.PENDING_MANUAL
    )
    return values


def _conditional_update(session: Session, report_id: int, values: dict[str, Any]) -> int:
    """Write values unless the report is manually assigned; return rows hit."""
    stmt = (
        update(Report)
        .where(
            Report.id == report_id,
            Report.assignment_status != AssignmentStatus.MANUALLY_ASSIGNED,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.commit()
    return result.rowcount


def try_auto_assignment(
    session: Session, report_id: int, lat: float, lng: float, boundaries: BoundaryIndex
) -> AssignmentOutcome:
    """
    Run automatic resolution for one report.

    Args:
        session:    Open database session.
        report_id:  Report to resolve.
        lat, lng:   The report's coordinate.
        boundaries: Loaded boundary data.

    Returns:
        The outcome; ``outcome.handled`` is True for auto-assigned and for
        skipped (already manually assigned) reports.
    """
    try:
        report = session.get(Report, report_id)
    except SQLAlchemyError as exc:
        logger.error("Could not read report %s for auto-assignment: %s", report_id, exc)
        session.rollback()
        return AssignmentOutcome.PENDING_MANUAL

    if report is None:
        logger.warning("Report %s not found; nothing to assign", report_id)
        return AssignmentOutcome.NOT_FOUND

    if report.assignment_status == AssignmentStatus.MANUALLY_ASSIGNED:
        logger.info("Report %s already manually assigned; skipping", report_id)
        return AssignmentOutcome.SKIPPED

    values = derive_assignment(session, lat, lng, boundaries)

    try:
        updated = _conditional_update(session, report_id, values)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Auto-assignment write failed for report %s: %s", report_id, exc)
        return AssignmentOutcome.PENDING_MANUAL

    session.expire(report)
    if updated == 0:
        logger.info("Report %s was manually assigned concurrently; skipping", report_id)
        return AssignmentOutcome.SKIPPED

    status = values["assignment_status"]
    logger.info(
        "Report %s (%.4f, %.4f) -> AC: %s | PC: %s | %s",
        report_id,
        lat,
        lng,
        values.get("constituency"),
        values.get("parliamentary_constituency"),
        status.value,
    )
    if status == AssignmentStatus.AUTO_ASSIGNED:
        return AssignmentOutcome.AUTO_ASSIGNED
    return AssignmentOutcome.PENDING_MANUAL


def process_unassigned_reports(session: Session, boundaries: BoundaryIndex) -> BatchResult:
    """
    Re-run automatic resolution for reports never touched by it.

    Only pending reports whose state still holds the creation sentinel are
    selected, so a second run leaves already resolved reports alone.
    Reports are processed one at a time.
    """
    rows = session.execute(
        select(Report.id, Report.latitude, Report.longitude)
        .where(
            Report.assignment_status == AssignmentStatus.PENDING_MANUAL,
            Report.state == PENDING_SENTINEL,
        )
        .order_by(Report.id)
    ).all()

    logger.info("Processing %d unassigned reports", len(rows))

    assigned = 0
    for report_id, lat, lng in rows:
        outcome = try_auto_assignment(session, report_id, lat, lng, boundaries)
        if outcome == AssignmentOutcome.AUTO_ASSIGNED:
            assigned += 1

    logger.info("Batch assignment finished: %d of %d reports auto-assigned", assigned, len(rows))
    return BatchResult(processed=len(rows), assigned=assigned)


# ── Administration ────────────────────────────────────────────────────────────

def _get_report(session: Session, report_id: int) -> Report:
    report = session.get(Report, report_id)
    if report is None:
        raise ReportNotFoundError("Report not found", {"report_id": report_id})
    return report


def create_report(
    session: Session, latitude: float, longitude: float, location_name: str = ""
) -> Report:
    """Persist a new report with every assignment field at its default."""
    report = Report(latitude=latitude, longitude=longitude, location_name=location_name)
    session.add(report)
    session.commit()
    session.refresh(report)
    return report


def override_assignment(
    session: Session, report_id: int, override: AssignmentOverride
) -> OverrideResult:
    """
    Apply an administrator's assignment unconditionally.

    Lookups only enrich the record: a representative that cannot be found
    is stored as "". The MP lookup runs only when a parliamentary
    constituency was supplied.

    Raises:
        ReportNotFoundError: If the report does not exist.
    """
    report = _get_report(session, report_id)
    pc_name = override.parliamentary_constituency or ""

    mla = _safe_lookup("MLA", find_mla, session, override.state, override.constituency)
    mp = _safe_lookup("MP", find_mp, session, override.state, pc_name) if pc_name else None

    report.state = override.state
    report.constituency = override.constituency
    report.parliamentary_constituency = pc_name
    report.mla = mla.name if mla else ""
    report.mp = mp.name if mp else ""
    report.assignment_status = AssignmentStatus.MANUALLY_ASSIGNED
    session.commit()

    logger.info(
        "Report %s manually assigned to %s / %s / %s",
        report_id,
        override.state,
        override.constituency,
        pc_name or "-",
    )
    return OverrideResult(report=report, mla=mla, mp=mp)


def assignment_stats(session: Session) -> dict[str, int]:
    """Count reports per assignment status; absent statuses count 0."""
    counts = {status.value: 0 for status in AssignmentStatus}
    rows = session.execute(
        select(Report.assignment_status, func.count()).group_by(Report.assignment_status)
    )
    for status, count in rows:
        counts[AssignmentStatus(status).value] = count
    return counts


def list_pending_assignments(session: Session) -> list[Report]:
    """Pending, non-rejected reports, newest first."""
    stmt = (
        select(Report)
        .where(
            Report.assignment_status == AssignmentStatus.PENDING_MANUAL,
            Report.approval_status != ApprovalStatus.REJECTED,
        )
        .order_by(Report.created_at.desc(), Report.id.desc())
    )
    return list(session.scalars(stmt))


def can_approve(report: Report) -> bool:
    """Approval is blocked while constituency assignment is pending."""
    return report.assignment_status != AssignmentStatus.PENDING_MANUAL


def approve_report(session: Session, report_id: int) -> Report:
    """
    Mark a report approved.

    Raises:
        ReportNotFoundError:        If the report does not exist.
        ReportAlreadyApprovedError: If it is already approved.
        AssignmentPendingError:     If its assignment is still pending.
    """
    report = _get_report(session, report_id)

    if report.approval_status == ApprovalStatus.APPROVED:
        raise ReportAlreadyApprovedError("Report is already approved", {"report_id": report_id})

    if not can_approve(report):
        raise AssignmentPendingError(
            "Cannot approve report: constituency assignment must be completed first",
            {"report_id": report_id},
        )

    report.approval_status = ApprovalStatus.APPROVED
    session.commit()
    return report
