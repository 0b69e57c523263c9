from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.db import get_session
from app.models import User
from app.sessions import SessionManager
from app.users import get_user


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def current_user(
    request: Request,
    db: Session = Depends(get_session),
    sessions: SessionManager = Depends(get_session_manager),
) -> User:
    """The logged-in user, or 401 for anonymous requests."""
    user_id = sessions.load_user_id(request)
    user = get_user(db, user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="not logged in")
    return user
