from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.db.models import InstallationSessionEntry


def list_session_entries(db: Session, *, session_id: str) -> dict[str, str]:
    rows = db.scalars(
        select(InstallationSessionEntry).where(InstallationSessionEntry.session_id == session_id)
    )
    return {row.key: row.value_text for row in rows}


def get_session_entry(db: Session, *, session_id: str, key: str) -> str | None:
    row = db.get(InstallationSessionEntry, (session_id, key))
    if row is None:
        return None
    return row.value_text


def upsert_session_entry(db: Session, *, session_id: str, key: str, value_text: str) -> None:
    now = datetime.now(timezone.utc)
    row = db.get(InstallationSessionEntry, (session_id, key))
    if row is None:
        row = InstallationSessionEntry(
            session_id=session_id,
            key=key,
            value_text=value_text,
            created_at=now,
            updated_at=now,
        )
    else:
        row.value_text = value_text
        row.updated_at = now
    db.add(row)
    db.commit()


def delete_session_entries(db: Session, *, session_id: str) -> int:
    result = db.execute(
        delete(InstallationSessionEntry).where(InstallationSessionEntry.session_id == session_id)
    )
    db.commit()
    return int(result.rowcount or 0)
