from datetime import datetime

from sqlalchemy import DateTime, Index, PrimaryKeyConstraint, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class InstallationSessionEntry(Base):
    __tablename__ = "installation_session_entries"
    __table_args__ = (
        PrimaryKeyConstraint("session_id", "key", name="pk_installation_session_entries"),
        Index("ix_installation_session_entries_updated_at", "updated_at"),
    )

    session_id: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(32), nullable=False)
    value_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
