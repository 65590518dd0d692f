# Filename: neodrive/routers/user.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session as DBSession

from ..auth import get_password_hash, get_session_store, optional_session, verify_password
from ..db import get_session
from ..models import User, utcnow
from ..schemas import MessageOut, NameChangeRequest, NameOut, PasswordChangeRequest
from ..sessions import Session, SessionStore
from ..utils import ensure_owner

router = APIRouter(prefix="/api/user", tags=["user"])


def _load_user(db: DBSession, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.patch("/name", response_model=NameOut)
def change_name(
    data: NameChangeRequest,
    session: Optional[Session] = Depends(optional_session),
    db: DBSession = Depends(get_session),
    store: SessionStore = Depends(get_session_store),
):
    session = ensure_owner(session, data.user_id)
    user = _load_user(db, session.user_id)
    if user.name == data.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name must be different from the current name")

    user.name = data.name
    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    store.update_identity(user.id, display_name=data.name)
    return NameOut(name=data.name)


@router.patch("/password", response_model=MessageOut)
def change_password(
    data: PasswordChangeRequest,
    session: Optional[Session] = Depends(optional_session),
    db: DBSession = Depends(get_session),
):
    session = ensure_owner(session, data.user_id)
    user = _load_user(db, session.user_id)
    if not verify_password(data.current_password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")
    if data.new_password == data.current_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="New password must be different from the current password",
        )

    user.hashed_password = get_password_hash(data.new_password)
    user.updated_at = utcnow()
    db.add(user)
    db.commit()
    return MessageOut(message="Password changed successfully")
