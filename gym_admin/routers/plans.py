from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from ..deps import get_caller
from ..plans import get_catalog
from ..schemas import PlansListResponse


router = APIRouter(prefix="/api", tags=["plans"], dependencies=[Depends(get_caller)])


@router.get("/plans.list", response_model=PlansListResponse)
def plans_list(category: Optional[str] = None):
    catalog = get_catalog()
    items = catalog.by_category(category) if category else list(catalog)
    return {"items": items, "total": len(items)}
