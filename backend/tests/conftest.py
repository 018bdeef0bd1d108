"""
conftest.py - Shared pytest fixtures for the constituency assignment suite.

Provides:
    - GeoJSON geometries and raw features around Kandhamal, Odisha.
    - A BoundaryIndex built from those features (no files touched).
    - An in-memory SQLite session with the schema created.
    - Helpers to seed reports and MLA / MP reference rows.
    - A FastAPI TestClient whose lifespan uses the fixtures above.
"""

from __future__ import annotations

from contextlib import contextmanager
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import InternalError, ProgrammingError
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from geo_assign.boundaries import (
    ASSEMBLY,
    PARLIAMENTARY,
    BoundaryIndex,
    parse_features,
)
from geo_assign.config import Settings
from geo_assign.database import get_session_factory
from geo_assign.main import app
from geo_assign.models import Base, MLARecord, MPRecord, Report

# A point inside both Kandhamal squares below.
KANDHAMAL_POINT = (20.95, 85.10)
# Inside Phulbani AC, still inside Kandhamal PC.
PHULBANI_POINT = (20.60, 85.10)
# Far outside every fixture feature.
OUTSIDE_POINT = (12.97, 77.59)


def _square(min_lng: float, min_lat: float, max_lng: float, max_lat: float) -> list:
    return [
        [min_lng, min_lat],
        [max_lng, min_lat],
        [max_lng, max_lat],
        [min_lng, max_lat],
        [min_lng, min_lat],  # closed ring
    ]


# ── GeoJSON geometry fixtures ──────────────────────────────────────────────────

@pytest.fixture
def square_polygon_geometry() -> dict:
    """
    Square around Kandhamal.
    Interior point: (85.10, 20.95). Exterior point: (0.0, 0.0).
    """
    return {"type": "Polygon", "coordinates": [_square(84.90, 20.80, 85.30, 21.10)]}


@pytest.fixture
def polygon_with_hole_geometry() -> dict:
    """
    A large square with a smaller square cut out of its centre.
        - (84.55, 20.55) inside outer ring, outside hole
        - (85.00, 21.00) inside hole
    """
    outer = _square(84.50, 20.50, 85.50, 21.50)
    hole = _square(84.90, 20.90, 85.10, 21.10)
    return {"type": "Polygon", "coordinates": [outer, hole]}


@pytest.fixture
def multi_polygon_geometry() -> dict:
    """Two non-overlapping squares separated by a gap at lng 85.15."""
    square_a = [_square(85.00, 20.90, 85.10, 21.00)]
    square_b = [_square(85.20, 20.90, 85.30, 21.00)]
    return {"type": "MultiPolygon", "coordinates": [square_a, square_b]}


# ── Boundary fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def assembly_features() -> list[dict]:
    """Kandhamal (reserved, "SC" suffix) and Phulbani (parenthesised "(ST)")."""
    return [
        {
            "type": "Feature",
            "properties": {"ST_NAME": "Odisha", "AC_NAME": "Kandhamal SC"},
            "geometry": {"type": "Polygon", "coordinates": [_square(84.90, 20.80, 85.30, 21.10)]},
        },
        {
            "type": "Feature",
            "properties": {"st_name": "Odisha", "ac_name": "Phulbani (ST)"},
            "geometry": {
                "type": "MultiPolygon",
                "coordinates": [[_square(84.90, 20.40, 85.30, 20.79)]],
            },
        },
    ]


@pytest.fixture
def parliamentary_features() -> list[dict]:
    """One PC covering both ACs; carries only its seat name."""
    return [
        {
            "type": "Feature",
            "properties": {"pc_name": "Kandhamal"},
            "geometry": {"type": "Polygon", "coordinates": [_square(84.80, 20.30, 85.40, 21.20)]},
        }
    ]


@pytest.fixture
def boundary_index(assembly_features, parliamentary_features) -> BoundaryIndex:
    return BoundaryIndex(
        assembly=parse_features(assembly_features, ASSEMBLY),
        parliamentary=parse_features(parliamentary_features, PARLIAMENTARY),
        assembly_loaded=True,
        parliamentary_loaded=True,
    )


@pytest.fixture
def empty_index() -> BoundaryIndex:
    """What the service sees when boundary files failed to load."""
    return BoundaryIndex()


# ── Database fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Session:
    with Session(engine) as session:
        yield session


def add_report(session: Session, lat: float, lng: float, **fields) -> Report:
    report = Report(latitude=lat, longitude=lng, **fields)
    session.add(report)
    session.commit()
    return report


def add_mla(session: Session, state: str, constituency: str, mla: str, party: str = "BJD") -> None:
    session.add(MLARecord(state=state, constituency=constituency, mla=mla, party=party))
    session.commit()


def add_mp(session: Session, state: str, pc_name: str, mp_name: str, party: str = "BJP") -> None:
    session.add(MPRecord(state=state, pc_name=pc_name, mp_name=mp_name, party=party))
    session.commit()


def fail_first_query(session: Session, monkeypatch) -> dict:
    """
    Make the next ``session.scalars`` call fail and leave the transaction
    aborted, as PostgreSQL does: every later query raises until
    ``session.rollback()`` is called.

    Returns a dict whose "rollbacks" entry counts rollback calls.
    """
    real_scalars, real_execute, real_rollback = session.scalars, session.execute, session.rollback
    state = {"failed": False, "raised": False, "rollbacks": 0}

    def _check_aborted():
        if state["failed"]:
            raise InternalError("SELECT", {}, Exception("current transaction is aborted"))

    def scalars(statement, *args, **kwargs):
        _check_aborted()
        if not state["raised"]:
            state["raised"] = state["failed"] = True
            raise ProgrammingError("SELECT", {}, Exception("relation is locked"))
        return real_scalars(statement, *args, **kwargs)

    def execute(statement, *args, **kwargs):
        _check_aborted()
        return real_execute(statement, *args, **kwargs)

    def rollback():
        state["failed"] = False
        state["rollbacks"] += 1
        real_rollback()

    monkeypatch.setattr(session, "scalars", scalars)
    monkeypatch.setattr(session, "execute", execute)
    monkeypatch.setattr(session, "rollback", rollback)
    return state


# ── API TestClient fixtures ───────────────────────────────────────────────────

async def _boundary_load_finished() -> None:
    await app.state.boundary_load


def wait_for_boundaries(client: TestClient) -> None:
    """Block until the lifespan's background boundary load has finished."""
    client.portal.call(_boundary_load_finished)


@contextmanager
def client_with_boundaries(index: BoundaryIndex, loader=None, wait: bool = True):
    """
    TestClient whose lifespan opens a fresh in-memory database and installs
    ``index`` as the loaded boundary data.

    ``loader`` replaces load_boundaries (default: return ``index``). With
    ``wait`` the client is handed out only after the load has finished.
    """
    settings = Settings(
        database_url="sqlite://",
        mla_data_path=None,
        mp_data_path=None,
        _env_file=None,
    )
    with patch("geo_assign.main.get_settings", return_value=settings), patch(
        "geo_assign.main.load_boundaries", new=loader or (lambda *paths: index)
    ):
        with TestClient(app, raise_server_exceptions=True) as client:
            if wait:
                wait_for_boundaries(client)
            yield client


@pytest.fixture
def client(boundary_index) -> TestClient:
    with client_with_boundaries(boundary_index) as client:
        yield client


@pytest.fixture
def client_no_boundaries(empty_index) -> TestClient:
    with client_with_boundaries(empty_index) as client:
        yield client


@pytest.fixture
def api_session(client) -> Session:
    """Session on the database the running app is using."""
    with get_session_factory()() as session:
        yield session
