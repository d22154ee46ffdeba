"""
Request identity.

Authentication lives outside this service; callers pass the resolved user id
in the X-User-Id header and routes only distinguish "user" from "admin".
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlmodel import Session

from portal.database import get_session
from portal.models.user import User


def get_current_user(
    x_user_id: Optional[int] = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = session.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
