from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from .models import SystemLog


def record(
    db: Session,
    action: str,
    entity: str,
    entity_id: Optional[str],
    actor: Optional[str] = "admin",
    status: str = "ok",
    message: Optional[str] = None,
) -> None:
    """Append an audit row to the caller's transaction; committed with the change it describes."""
    db.add(
        SystemLog(
            actor=actor,
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            status=status,
            message=message,
        )
    )
