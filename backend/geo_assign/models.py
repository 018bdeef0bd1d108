"""
models.py - SQLAlchemy ORM models.

Three tables:
    reports      the assignment-relevant slice of a citizen report
    mla_records  MLA reference table, one row per assembly seat
    mp_records   MP reference table, one row per parliamentary seat

The reference tables are maintained outside this service and are only
read here (apart from the optional startup seed).
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from geo_assign.config import MAX_NAME_LENGTH, PENDING_SENTINEL


class Base(DeclarativeBase):
    """Base class for all ORM models"""


class AssignmentStatus(str, enum.Enum):
    """
    Constituency assignment state of a report.

    pending_manual     initial / unresolved, needs an administrator
    auto_assigned      both MLA and MP resolved automatically
    manually_assigned  administrator-confirmed; terminal for automatic updates
    """

    PENDING_MANUAL = "pending_manual"
    AUTO_ASSIGNED = "auto_assigned"
    MANUALLY_ASSIGNED = "manually_assigned"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Report(Base):
    """
    A citizen report, reduced to the fields this service reads and writes.

    latitude / longitude are fixed at creation; every other assignment
    field starts at its sentinel and is rewritten by resolution or override.
    """

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    location_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)

    state: Mapped[str] = mapped_column(
        String(MAX_NAME_LENGTH), nullable=False, default=PENDING_SENTINEL
    )
    constituency: Mapped[str] = mapped_column(
        String(MAX_NAME_LENGTH), nullable=False, default=PENDING_SENTINEL, index=True
    )
    parliamentary_constituency: Mapped[str] = mapped_column(
        String(MAX_NAME_LENGTH), nullable=False, default=PENDING_SENTINEL
    )
    mla: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, default="")
    mp: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, default="")

    assignment_status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AssignmentStatus.PENDING_MANUAL,
        index=True,
    )
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )


class MLARecord(Base):
    """MLA reference row, keyed by (state, constituency)."""

    __tablename__ = "mla_records"
    __table_args__ = (UniqueConstraint("state", "constituency", name="uq_mla_state_constituency"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    state: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, index=True)
    constituency: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    mla: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    party: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)


class MPRecord(Base):
    """MP reference row, keyed by (state, pc_name)."""

    __tablename__ = "mp_records"
    __table_args__ = (UniqueConstraint("state", "pc_name", name="uq_mp_state_pc_name"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    state: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, index=True)
    pc_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    mp_name: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False)
    party: Mapped[str] = mapped_column(String(MAX_NAME_LENGTH), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
