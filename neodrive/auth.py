# Filename: neodrive/auth.py
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from passlib.context import CryptContext
from sqlmodel import Session as DBSession, select

from .config import Settings
from .models import User
from .sessions import Identity, Session, SessionStore

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def get_user_by_email(db: DBSession, email: str) -> Optional[User]:
    statement = select(User).where(User.email == email.lower())
    return db.exec(statement).first()


def identity_for(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        display_name=user.name,
        email=user.email,
        subscription_tier=user.subscription,
    )


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )


def session_token(request: Request) -> Optional[str]:
    return request.cookies.get(request.app.state.settings.session_cookie_name)


def optional_session(
    request: Request,
    response: Response,
    store: SessionStore = Depends(get_session_store),
) -> Optional[Session]:
    """Resolve the cookie to a live session and slide its expiration."""
    token = session_token(request)
    session = store.touch(token) if token else None
    if session is not None:
        set_session_cookie(response, token, request.app.state.settings)
    return session


def current_session(session: Optional[Session] = Depends(optional_session)) -> Session:
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    return session
