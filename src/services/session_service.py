# SPDX-FileCopyrightText: 2025 Roland Knall <rknall@gmail.com>
# SPDX-License-Identifier: GPL-2.0-only
"""Cookie session lookup for resolving the requesting user."""

import uuid
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from src.models import User, UserSession

SESSION_EXPIRY_DAYS = 7


def create_session(db: Session, user_id: uuid.UUID) -> str:
    """Create a new session for a user and return its token."""
    token = str(uuid.uuid4())
    session = UserSession(
        user_id=user_id,
        token=token,
        expires_at=datetime.utcnow() + timedelta(days=SESSION_EXPIRY_DAYS),
    )
    db.add(session)
    db.commit()
    return token


def get_session(db: Session, token: str) -> UserSession | None:
    """Get a valid session by token, dropping it if expired."""
    session = db.query(UserSession).filter(UserSession.token == token).first()
    if not session:
        return None
    if session.expires_at < datetime.utcnow():
        db.delete(session)
        db.commit()
        return None
    return session


def get_user_by_id(db: Session, user_id: uuid.UUID) -> User | None:
    return db.query(User).filter(User.id == user_id).first()
