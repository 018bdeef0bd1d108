"""
main.py - FastAPI application entry point for constituency assignment.

Exposes:
    GET  /                                       health check (root)
    GET  /health                                 boundary load status
    GET  /api/v1/lookup                          stateless AC/PC + MLA/MP lookup
    POST /api/v1/reports                         create report, resolve in background
    GET  /api/v1/reports/{report_id}             current assignment of a report
    POST /api/v1/reports/{report_id}/resolve     re-run automatic resolution
    GET  /api/v1/admin/assignments/pending       pending queue + status counts
    GET  /api/v1/admin/assignments/stats         status counts
    PUT  /api/v1/admin/assignments/{report_id}   administrator override
    POST /api/v1/admin/assignments/reprocess     backfill untouched reports
    POST /api/v1/admin/reports/{report_id}/approve   approval gate
    GET  /api/v1/constituencies                  states / ACs / MLA lookup
    GET  /api/v1/constituencies/parliamentary    PCs of a state
    GET  /api/v1/constituencies/mp               MP lookup
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from geo_assign.assignment import (
    approve_report,
    assignment_stats,
    create_report,
    list_pending_assignments,
    override_assignment,
    process_unassigned_reports,
    try_auto_assignment,
)
from geo_assign.boundaries import (
    BoundaryIndex,
    get_boundary_index,
    load_boundaries,
    locate,
    set_boundary_index,
)
from geo_assign.config import MAX_NAME_LENGTH, get_settings
from geo_assign.database import dispose_engine, get_session, get_session_factory, init_engine
from geo_assign.exceptions import (
    AssignmentPendingError,
    ReportAlreadyApprovedError,
    ReportNotFoundError,
)
from geo_assign.models import AssignmentStatus, Report
from geo_assign.naming import normalize_constituency_name
from geo_assign.representatives import (
    RepresentativeMatch,
    find_mla,
    find_mp,
    list_constituencies,
    list_parliamentary_constituencies,
    list_states,
    load_reference_tables,
)
from geo_assign.schemas import (
    AssignmentOverride,
    AssignmentStats,
    BatchResponse,
    OverrideResponse,
    PendingAssignmentsResponse,
    ReportCreate,
    ReportResponse,
    RepresentativeResponse,
    ResolveResponse,
)

# ── Logging ──────────────────────────────────────────────────────────────────
logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


async def _load_boundaries_in_background(assembly_path: Path, parliamentary_path: Path) -> None:
    """Parse boundary files off the event loop and publish the index when done."""
    try:
        index = await asyncio.to_thread(load_boundaries, assembly_path, parliamentary_path)
    except Exception:
        logger.exception("Boundary load crashed; every new report will need manual assignment")
        return

    set_boundary_index(index)
    logger.info("Loaded %d AC boundaries", len(index.assembly))
    logger.info("Loaded %d PC boundaries", len(index.parliamentary))
    if not index.loaded:
        logger.error("Boundary data unavailable; every new report will need manual assignment")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Open the database and seed reference tables, then start loading the
    boundary files. Requests are served while boundaries load; until then
    the index reads as unloaded.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    init_engine(settings.database_url)
    with get_session_factory()() as session:
        load_reference_tables(session, settings.mla_data_path, settings.mp_data_path)

    app.state.boundary_load = asyncio.create_task(
        _load_boundaries_in_background(
            settings.assembly_geojson_path, settings.parliamentary_geojson_path
        )
    )

    yield

    logger.info("Shutting down, releasing database engine.")
    boundary_load = app.state.boundary_load
    if not boundary_load.done():
        boundary_load.cancel()
        with suppress(asyncio.CancelledError):
            await boundary_load
    set_boundary_index(BoundaryIndex())
    dispose_engine()


# ── FastAPI app ───────────────────────────────────────────────────────────────
app = FastAPI(
    title="Constituency Assignment API",
    description=(
        "Resolve the assembly and parliamentary constituency, MLA and MP "
        "for citizen reports, with an administrator override queue."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_methods=["GET", "POST", "PUT"],
    allow_headers=["*"],
)


def get_boundaries() -> BoundaryIndex:
    return get_boundary_index()


def _resolve_in_background(report_id: int, lat: float, lng: float) -> None:
    """Fire-and-forget resolution for a freshly created report."""
    try:
        with get_session_factory()() as session:
            try_auto_assignment(session, report_id, lat, lng, get_boundary_index())
    except Exception:
        logger.exception(
            "Background constituency assignment failed for report %s; left for admin", report_id
        )


def _report_or_404(session: Session, report_id: int) -> Report:
    report = session.get(Report, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found.")
    return report


def _representative(match: Optional[RepresentativeMatch], seat: str) -> Optional[dict]:
    if match is None:
        return None
    return {"name": match.name, "party": match.party, "email": match.email, "constituency": seat}


# ── Health ────────────────────────────────────────────────────────────────────

@app.get("/", tags=["health"])
def root():
    """Root health-check endpoint."""
    return {"status": "ok", "message": "Constituency Assignment API is running."}


@app.get("/health", tags=["health"])
def health(boundaries: BoundaryIndex = Depends(get_boundaries)):
    """Boundary load status. Missing boundaries degrade service, they do not fail it."""
    return {
        "status": "ok" if boundaries.loaded else "degraded",
        "automatic_assignment_enabled": boundaries.loaded,
        "ac_constituencies_loaded": len(boundaries.assembly),
        "pc_constituencies_loaded": len(boundaries.parliamentary),
    }


# ── Lookup ────────────────────────────────────────────────────────────────────

@app.get("/api/v1/lookup", tags=["lookup"])
def lookup(
    lat: float = Query(..., ge=-90, le=90, description="Latitude (-90 to 90)"),
    lon: float = Query(..., ge=-180, le=180, description="Longitude (-180 to 180)"),
    session: Session = Depends(get_session),
    boundaries: BoundaryIndex = Depends(get_boundaries),
):
    """
    Return the AC, PC, MLA and MP for a coordinate without touching any report.

    Raises:
        HTTPException 503: If boundary data is not loaded.
        HTTPException 404: If the point falls inside no known boundary.
    """
    if not boundaries.assembly_loaded and not boundaries.parliamentary_loaded:
        raise HTTPException(status_code=503, detail="Boundary data not loaded.")

    containment = locate(lat=lat, lng=lon, index=boundaries)
    if containment.assembly is None and containment.parliamentary is None:
        logger.warning("No constituency found for (%.6f, %.6f)", lat, lon)
        raise HTTPException(
            status_code=404,
            detail=f"No constituency found for coordinates ({lat}, {lon}).",
        )

    state = containment.assembly.state if containment.assembly else None
    constituency = (
        normalize_constituency_name(containment.assembly.name) if containment.assembly else None
    )
    pc_name = containment.parliamentary.name if containment.parliamentary else None
    state = state or (containment.parliamentary.state if containment.parliamentary else None)

    mla = find_mla(session, state or "", constituency or "")
    mp = find_mp(session, state or "", pc_name or "")

    return {
        "latitude": lat,
        "longitude": lon,
        "state": state,
        "constituency": constituency,
        "parliamentary_constituency": pc_name,
        "mla": _representative(mla, constituency or ""),
        "mp": _representative(mp, pc_name or ""),
    }


# ── Reports ───────────────────────────────────────────────────────────────────

@app.post("/api/v1/reports", tags=["reports"], status_code=201, response_model=ReportResponse)
def submit_report(
    payload: ReportCreate,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
):
    """
    Persist a report and schedule constituency resolution.

    Resolution runs after the response is sent; its failures are logged and
    never surface to the submitter.
    """
    report = create_report(session, payload.latitude, payload.longitude, payload.location_name)
    background_tasks.add_task(_resolve_in_background, report.id, report.latitude, report.longitude)
    return report


@app.get("/api/v1/reports/{report_id}", tags=["reports"], response_model=ReportResponse)
def get_report(report_id: int, session: Session = Depends(get_session)):
    return _report_or_404(session, report_id)


@app.post("/api/v1/reports/{report_id}/resolve", tags=["reports"], response_model=ResolveResponse)
def resolve_report(
    report_id: int,
    session: Session = Depends(get_session),
    boundaries: BoundaryIndex = Depends(get_boundaries),
):
    """Run automatic resolution now, using the report's stored coordinate."""
    report = _report_or_404(session, report_id)
    outcome = try_auto_assignment(
        session, report_id, report.latitude, report.longitude, boundaries
    )
    return ResolveResponse(report_id=report_id, outcome=outcome.value, handled=outcome.handled)


# ── Administration ────────────────────────────────────────────────────────────

@app.get(
    "/api/v1/admin/assignments/pending",
    tags=["admin"],
    response_model=PendingAssignmentsResponse,
)
def pending_assignments(session: Session = Depends(get_session)):
    """Reports awaiting manual assignment, newest first, plus status counts."""
    reports = list_pending_assignments(session)
    return PendingAssignmentsResponse(
        reports=[ReportResponse.model_validate(report) for report in reports],
        stats=AssignmentStats(**assignment_stats(session)),
    )


@app.get("/api/v1/admin/assignments/stats", tags=["admin"], response_model=AssignmentStats)
def stats(session: Session = Depends(get_session)):
    return AssignmentStats(**assignment_stats(session))


@app.put(
    "/api/v1/admin/assignments/{report_id}",
    tags=["admin"],
    response_model=OverrideResponse,
)
def assign_constituency(
    report_id: int,
    payload: AssignmentOverride,
    session: Session = Depends(get_session),
):
    """
    Assign a constituency manually. Always marks the report manually_assigned;
    representatives that cannot be found are left blank.
    """
    try:
        result = override_assignment(session, report_id, payload)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found.")

    report = result.report
    return OverrideResponse(
        report_id=report.id,
        state=report.state,
        constituency=report.constituency,
        parliamentary_constituency=report.parliamentary_constituency,
        mla=report.mla,
        mp=report.mp,
        mla_party=result.mla.party if result.mla else None,
        mp_party=result.mp.party if result.mp else None,
        assignment_status=AssignmentStatus(report.assignment_status),
    )


@app.post(
    "/api/v1/admin/assignments/reprocess",
    tags=["admin"],
    response_model=BatchResponse,
)
def reprocess_assignments(
    session: Session = Depends(get_session),
    boundaries: BoundaryIndex = Depends(get_boundaries),
):
    """Backfill reports that automatic resolution never touched."""
    result = process_unassigned_reports(session, boundaries)
    return BatchResponse(processed=result.processed, assigned=result.assigned)


@app.post(
    "/api/v1/admin/reports/{report_id}/approve",
    tags=["admin"],
    response_model=ReportResponse,
)
def approve(report_id: int, session: Session = Depends(get_session)):
    """Approve a report; refused while its constituency assignment is pending."""
    try:
        return approve_report(session, report_id)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found.")
    except (AssignmentPendingError, ReportAlreadyApprovedError) as exc:
        raise HTTPException(status_code=400, detail=exc.message)


# ── Reference data ────────────────────────────────────────────────────────────

@app.get("/api/v1/constituencies", tags=["reference"])
def constituencies(
    state: Optional[str] = Query(None, min_length=1, max_length=MAX_NAME_LENGTH),
    constituency: Optional[str] = Query(None, min_length=1, max_length=MAX_NAME_LENGTH),
    session: Session = Depends(get_session),
):
    """
    Browse the MLA reference table.

    No parameters: all states. ``state``: its assembly constituencies.
    ``state`` and ``constituency``: the MLA for that seat.
    """
    if not state:
        if constituency:
            raise HTTPException(status_code=400, detail="Invalid query parameters.")
        return {"data": list_states(session)}

    if not constituency:
        return {"data": list_constituencies(session, state)}

    match = find_mla(session, state, constituency)
    if match is None:
        raise HTTPException(status_code=404, detail="Constituency not found.")
    return {
        "data": RepresentativeResponse(
            name=match.name, party=match.party, email=match.email, constituency=constituency
        )
    }


@app.get("/api/v1/constituencies/parliamentary", tags=["reference"])
def parliamentary_constituencies(
    state: str = Query(..., min_length=1, max_length=MAX_NAME_LENGTH),
    session: Session = Depends(get_session),
):
    return {"data": list_parliamentary_constituencies(session, state)}


@app.get("/api/v1/constituencies/mp", tags=["reference"])
def member_of_parliament(
    state: str = Query(..., min_length=1, max_length=MAX_NAME_LENGTH),
    pc_name: str = Query(..., min_length=1, max_length=MAX_NAME_LENGTH),
    session: Session = Depends(get_session),
):
    match = find_mp(session, state, pc_name)
    if match is None:
        raise HTTPException(status_code=404, detail="MP not found.")
    return {
        "data": RepresentativeResponse(
            name=match.name, party=match.party, email=match.email, constituency=pc_name
        )
    }
