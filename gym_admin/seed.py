from __future__ import annotations

from sqlalchemy import select

from .database import SessionLocal, init_db
from .models import Trainer


DEFAULT_TRAINERS = [
    ("trainer-kim", "김트레이너", "웨이트 트레이닝", "blue"),
    ("trainer-lee", "이트레이너", "다이어트/체형교정", "green"),
    ("trainer-park", "박트레이너", "재활/기능성 운동", "orange"),
]


def upsert_defaults() -> int:
    """Insert the default trainers when missing. Returns how many were added."""
    init_db()
    db = SessionLocal()
    added = 0
    try:
        existing = set(db.execute(select(Trainer.id)).scalars().all())
        for id_, name, specialty, color in DEFAULT_TRAINERS:
            if id_ not in existing:
                db.add(Trainer(id=id_, name=name, specialty=specialty, color=color))
                added += 1
        db.commit()
    finally:
        db.close()
    return added


def main() -> None:
    added = upsert_defaults()
    print(f"Seed complete ({added} trainers added).")


if __name__ == "__main__":
    main()
