from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import current_user, get_session_manager
from app.db import get_session
from app.metrics import LOGINS
from app.models import User
from app.sessions import SessionManager
from app.users import authenticate


class LoginIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    id: int
    username: str


router = APIRouter(tags=["auth"])


@router.post("/login", response_model=UserOut)
def login(
    payload: LoginIn,
    response: Response,
    db: Session = Depends(get_session),
    sessions: SessionManager = Depends(get_session_manager),
) -> UserOut:
    user = authenticate(db, payload.username, payload.password)
    if user is None:
        LOGINS.labels(result="rejected").inc()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid login")
    LOGINS.labels(result="ok").inc()
    sessions.save(response, user.id)
    return UserOut(id=user.id, username=user.username)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(sessions: SessionManager = Depends(get_session_manager)) -> Response:
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    sessions.clear(response)
    return response


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(current_user)) -> UserOut:
    return UserOut(id=user.id, username=user.username)
