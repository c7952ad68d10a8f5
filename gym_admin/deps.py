from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db_session
from .errors import Forbidden
from .models import Member

ADMIN = "admin"
MEMBER = "member"


@dataclass(frozen=True)
class Caller:
    role: str
    member_id: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def get_db() -> Session:
    yield from get_db_session()


def get_now() -> datetime:
    """Wall-clock time in the gym's zone, naive. Tests override this dependency."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def get_caller(
    authorization: Optional[str] = Header(default=None),
    x_member_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Caller:
    settings = get_settings()
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()
    if token == settings.admin_token:
        return Caller(role=ADMIN)
    if token == settings.member_token:
        if not x_member_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Member-Id")
        if not db.get(Member, x_member_id):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown member")
        return Caller(role=MEMBER, member_id=x_member_id)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise Forbidden("Administrator access required")
    return caller


def require_member(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.member_id is None:
        raise Forbidden("Member context required")
    return caller
