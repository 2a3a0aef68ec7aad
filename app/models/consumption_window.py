from __future__ import annotations

from typing import Optional

from sqlalchemy import Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base


class ConsumptionWindow(Base):
    """One identity's usage within one rate limit window.

    Times are UNIX epoch seconds. ``window_end`` is exclusive: a window is
    active while ``window_end > now``. Expired rows are kept for audit until
    the cleanup sweep removes them.
    """

    __tablename__ = "consumption_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identity_kind: Mapped[str] = mapped_column(String(16), nullable=False)  # subject|session|address
    identity_value: Mapped[str] = mapped_column(String(255), nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    window_start: Mapped[float] = mapped_column(Float, nullable=False)
    window_end: Mapped[float] = mapped_column(Float, nullable=False)
    tier: Mapped[str] = mapped_column(String(32), nullable=False)  # anonymous|authenticated
    max_requests: Mapped[int] = mapped_column(Integer, nullable=False)
    window_seconds: Mapped[float] = mapped_column(Float, nullable=False)
    migrated_to_identity_value: Mapped[Optional[str]] = mapped_column(String(255))
    migrated_at: Mapped[Optional[float]] = mapped_column(Float)

    __table_args__ = (
        Index("ix_consumption_windows_identity", "identity_kind", "identity_value", "window_end"),
        Index("ix_consumption_windows_window_end", "window_end"),
    )

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"ConsumptionWindow(id={self.id}, kind={self.identity_kind}, "
            f"count={self.request_count}/{self.max_requests}, end={self.window_end})"
        )
