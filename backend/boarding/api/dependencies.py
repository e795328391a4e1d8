"""
FastAPI dependencies for the tour routes: the authenticated user, their
group memberships, the tour-manager gate for admin routes, and the
per-request cache bundle shared by services.
"""

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from boarding.core.db import get_db
from boarding.core.errors import TourAccessError
from boarding.core.security import decode_access_token
from boarding.crud.users import get_user_by_username, get_user_group_ids
from boarding.tours.caches import RequestCaches


bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: int
    username: str
    group_ids: list[int] = field(default_factory=list)
    can_manage_tours: bool = False


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError as exc:
        raise _unauthorized("Could not validate credentials") from exc
    username = payload.get("sub")
    user = get_user_by_username(db, username) if username else None
    if user is None:
        raise _unauthorized("Could not validate credentials")
    return CurrentUser(
        id=user.id,
        username=user.username,
        group_ids=get_user_group_ids(db, user.id),
        can_manage_tours=bool(user.can_manage_tours),
    )


def require_tour_manager(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.can_manage_tours:
        raise TourAccessError.missing_permission("manage_tours", {"user_id": user.id})
    return user


def get_request_caches(db: Session = Depends(get_db)) -> RequestCaches:
    return RequestCaches(db)
