from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import REAL, ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now_iso() -> str:
    """UTC timestamp as ``2026-10-18T09:30:00.000Z``."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_admin: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=utc_now_iso)


class Series(Base):
    __tablename__ = "series"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date_utc: Mapped[str] = mapped_column(Text, nullable=False)
    end_date_utc: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_locked: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=utc_now_iso)


class SeriesMember(Base):
    __tablename__ = "series_members"

    series_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("series.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    joined_at: Mapped[str] = mapped_column(Text, nullable=False, default=utc_now_iso)


class Match(Base):
    __tablename__ = "matches"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    series_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("series.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sport: Mapped[str] = mapped_column(Text, nullable=False)
    team_a: Mapped[str] = mapped_column(Text, nullable=False)
    team_b: Mapped[str] = mapped_column(Text, nullable=False)
    start_time_utc: Mapped[str] = mapped_column(Text, nullable=False)
    cutoff_minutes_before: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("30"))
    entry_points: Mapped[float] = mapped_column(REAL, nullable=False, server_default=text("50"))
    # scheduled | started | completed | washed_out
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'scheduled'"))
    # 'A' or 'B'
    winner: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_declared_at: Mapped[str | None] = mapped_column(Text, nullable=True)


class Prediction(Base):
    __tablename__ = "predictions"

    match_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    predicted_team: Mapped[str] = mapped_column(Text, nullable=False)
    predicted_at_utc: Mapped[str] = mapped_column(Text, nullable=False)
    locked: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))


class PointsLedgerEntry(Base):
    __tablename__ = "points_ledger"
    __table_args__ = (
        Index("idx_points_ledger_series_user", "series_id", "user_id"),
        Index("idx_points_ledger_match", "match_id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    match_id: Mapped[int] = mapped_column(Integer, ForeignKey("matches.id"), nullable=False)
    series_id: Mapped[int] = mapped_column(Integer, ForeignKey("series.id"), nullable=False)
    points: Mapped[float] = mapped_column(REAL, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False, default=utc_now_iso)
