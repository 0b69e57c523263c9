from __future__ import annotations

import os
from email.utils import parseaddr
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ValidationError, storage_errors
from .models import User

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def _parse_address(username: str) -> str:
    name, address = parseaddr(username.strip())
    local, _, domain = address.partition("@")
    if name or not local or "." not in domain or address != username.strip():
        raise ValidationError("username is not a valid email address")
    return address


def create_user(db: Session, username: str, password: str) -> User:
    """Add a login; the username doubles as the alert email address."""
    address = _parse_address(username)
    if not password:
        raise ValidationError("password cannot be empty")

    user = User(username=address, password_hash=hash_password(password))
    with storage_errors("user insert"):
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError(f"user {address} already exists")
        db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> Optional[User]:
    with storage_errors("user lookup"):
        return db.get(User, user_id)


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    """Return the user when the password matches, otherwise None."""
    if not username or not password:
        return None
    with storage_errors("user lookup"):
        user = db.execute(
            select(User).where(User.username == username.strip())
        ).scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user
