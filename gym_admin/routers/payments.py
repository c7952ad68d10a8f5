from __future__ import annotations

"""
Payment-gateway confirmations. Events are stored for reconciliation only;
tickets are issued through request approval, never from a webhook.
"""

import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .. import audit
from ..config import get_settings
from ..deps import get_db, require_admin
from ..models import PaymentEvent
from ..schemas import PaymentEventsListResponse


router = APIRouter(prefix="/api", tags=["payments"])
logger = logging.getLogger("payments")

CHECKOUT_COMPLETED = "checkout.session.completed"


def verify_sender(
    authorization: Optional[str] = Header(default=None),
    x_webhook_secret: Optional[str] = Header(default=None),
) -> None:
    """The shared secret when one is configured; otherwise the administrator bearer token."""
    settings = get_settings()
    if settings.webhook_secret:
        if not hmac.compare_digest(x_webhook_secret or "", settings.webhook_secret):
            raise HTTPException(status_code=401, detail="Invalid webhook secret")
        return
    token = ""
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    if not hmac.compare_digest(token, settings.admin_token):
        raise HTTPException(status_code=401, detail="Missing or invalid bearer token")


@router.post("/payments.webhook", dependencies=[Depends(verify_sender)])
async def payments_webhook(request: Request, db: Session = Depends(get_db)) -> dict:
    text = (await request.body()).decode("utf-8", errors="ignore")
    try:
        body = json.loads(text or "{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_type = (body.get("type") or "").strip() or None
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    obj = data.get("object") if isinstance(data.get("object"), dict) else {}
    member_id = None
    session_ref = None
    if event_type == CHECKOUT_COMPLETED:
        member_id = (obj.get("metadata") or {}).get("uid")
        session_ref = obj.get("id")

    event = PaymentEvent(event_type=event_type, member_id=member_id, session_ref=session_ref, payload=text)
    db.add(event)
    audit.record(db, "webhook", "payment_event", session_ref, actor="gateway", status="received", message=event_type)
    db.commit()
    logger.info("payment event type=%s member=%s session=%s", event_type, member_id, session_ref)
    return {"ok": True, "event_type": event_type}


@router.get("/payments.events", response_model=PaymentEventsListResponse, dependencies=[Depends(require_admin)])
def payments_events(
    db: Session = Depends(get_db),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    member_id: Optional[str] = None,
    event_type: Optional[str] = None,
):
    stmt = select(PaymentEvent)
    if member_id:
        stmt = stmt.where(PaymentEvent.member_id == member_id)
    if event_type:
        stmt = stmt.where(PaymentEvent.event_type == event_type)
    total = db.execute(stmt.order_by(PaymentEvent.id.desc())).scalars().all()
    items = total[(page - 1) * page_size : page * page_size]
    return {"items": items, "total": len(total)}
