"""SQLAlchemy models for the sftpmirror job store.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from sftpmirror.sync.domain import ItemStatus, JobKind, JobStatus


def _new_job_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class SyncItem(Base):
    """A remote path mirrored onto a local path.

    Never hard-deleted: deletion sets status to ``deleted`` so job history
    keeps its foreign keys.
    """

    __tablename__ = "sync_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_path: Mapped[str] = mapped_column(Text, nullable=False)
    local_path: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ItemStatus.PENDING.value, nullable=False
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    jobs: Mapped[list[Job]] = relationship("Job", back_populates="sync_item")

    __table_args__ = (
        UniqueConstraint("remote_path", "local_path", name="uq_sync_items_paths"),
        Index("idx_sync_items_active", "active"),
    )


class Job(Base):
    """One execution attempt against a sync item."""

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_job_id)
    kind: Mapped[str] = mapped_column(String(10), default=JobKind.SYNC.value, nullable=False)
    sync_item_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sync_items.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=JobStatus.QUEUED.value, nullable=False
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    log: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_bytes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_speed: Mapped[float | None] = mapped_column(Float, nullable=True)
    eta_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    failed_items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False
    )

    # Relationships
    sync_item: Mapped[SyncItem | None] = relationship("SyncItem", back_populates="jobs")

    # Indexes
    __table_args__ = (
        Index("idx_jobs_status_priority", "status", "priority", "created_at"),
        Index("idx_jobs_sync_item", "sync_item_id"),
    )


class Setting(Base):
    """Runtime setting stored as a key/value pair."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
