from __future__ import annotations

"""
Static plan catalog (membership, PT and locker products).

The engine only reads it. A deployment may replace the built-in table with a
JSON file (`GYM_PLAN_CATALOG_PATH`) holding a list of plan objects.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, TypeAdapter, model_validator

from .config import get_settings

MEMBERSHIP = "membership"
PT = "pt"
LOCKER = "locker"


class Plan(BaseModel):
    id: str
    name: str
    category: Literal["membership", "pt", "locker"]
    price: int
    duration_days: Optional[int] = None
    session_count: Optional[int] = None
    months: Optional[int] = None

    model_config = dict(frozen=True)

    @model_validator(mode="after")
    def _check_shape(self) -> "Plan":
        if self.category == PT:
            if not self.session_count or self.session_count <= 0:
                raise ValueError("PT plans need a positive session_count")
        elif not self.duration_days or self.duration_days <= 0:
            raise ValueError("membership and locker plans need a positive duration_days")
        return self

    @property
    def is_session_based(self) -> bool:
        return self.category == PT


DEFAULT_PLANS: List[Plan] = [
    Plan(id="health-3m", name="헬스 3개월", category=MEMBERSHIP, months=3, duration_days=90, price=150000),
    Plan(id="health-6m", name="헬스 6개월", category=MEMBERSHIP, months=6, duration_days=180, price=270000),
    Plan(id="health-10m", name="헬스 10개월", category=MEMBERSHIP, months=10, duration_days=300, price=396000),
    Plan(id="health-12m", name="헬스 12개월", category=MEMBERSHIP, months=12, duration_days=365, price=450000),
    Plan(id="pt-10", name="PT 10회", category=PT, session_count=10, price=500000),
    Plan(id="pt-20", name="PT 20회", category=PT, session_count=20, price=900000),
    Plan(id="pt-30", name="PT 30회", category=PT, session_count=30, price=1200000),
    Plan(id="pt-50", name="PT 50회", category=PT, session_count=50, price=1800000),
    Plan(id="locker-1m", name="라커 1개월", category=LOCKER, months=1, duration_days=30, price=10000),
    Plan(id="locker-3m", name="라커 3개월", category=LOCKER, months=3, duration_days=90, price=27000),
    Plan(id="locker-6m", name="라커 6개월", category=LOCKER, months=6, duration_days=180, price=50000),
    Plan(id="locker-12m", name="라커 12개월", category=LOCKER, months=12, duration_days=365, price=90000),
]


class PlanCatalog:
    def __init__(self, plans: List[Plan]) -> None:
        self._by_id: Dict[str, Plan] = {p.id: p for p in plans}
        self._by_name: Dict[str, Plan] = {p.name: p for p in plans}

    def __iter__(self):
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, plan_id: Optional[str]) -> Optional[Plan]:
        if not plan_id:
            return None
        return self._by_id.get(plan_id)

    def find(self, plan_id: Optional[str] = None, name: Optional[str] = None) -> Optional[Plan]:
        """Look a plan up by id, falling back to its display name."""
        plan = self.get(plan_id)
        if plan is None and name:
            plan = self._by_name.get(name)
        return plan

    def by_category(self, category: str) -> List[Plan]:
        return [p for p in self._by_id.values() if p.category == category]

    def duration_table(self, pt_validity_days: int) -> Dict[str, int]:
        """Nominal validity window in days, keyed by plan name."""
        return {
            p.name: (pt_validity_days if p.is_session_based else int(p.duration_days or 0))
            for p in self._by_id.values()
        }


def load_catalog(path: Path) -> PlanCatalog:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    plans = TypeAdapter(List[Plan]).validate_python(raw)
    return PlanCatalog(plans)


@lru_cache(maxsize=1)
def get_catalog() -> PlanCatalog:
    settings = get_settings()
    if settings.plan_catalog_path:
        return load_catalog(Path(settings.plan_catalog_path))
    return PlanCatalog(DEFAULT_PLANS)
