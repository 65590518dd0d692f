# Filename: neodrive/routers/auth.py
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlmodel import Session as DBSession

from ..auth import (
    clear_session_cookie,
    current_session,
    get_password_hash,
    get_session_store,
    get_settings_dep,
    get_user_by_email,
    identity_for,
    session_token,
    set_session_cookie,
    verify_password,
)
from ..billing import PaymentGateway
from ..config import Settings
from ..db import get_session
from ..models import User
from ..schemas import IdentityOut, LoginRequest, MessageOut, SignupRequest
from ..sessions import Session, SessionStore
from .billing import get_payment_gateway

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=IdentityOut)
def login(
    data: LoginRequest,
    response: Response,
    db: DBSession = Depends(get_session),
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings_dep),
):
    user = get_user_by_email(db, data.email)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Failed to find user")
    if not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    token = store.create(identity_for(user))
    set_session_cookie(response, token, settings)
    return IdentityOut(id=user.id, name=user.name, email=user.email, subscription=user.subscription)


@router.post("/signup", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def signup(
    data: SignupRequest,
    db: DBSession = Depends(get_session),
    payments: PaymentGateway = Depends(get_payment_gateway),
):
    email = data.email.lower()
    if get_user_by_email(db, email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    user = User(
        name=data.name,
        email=email,
        hashed_password=get_password_hash(data.password),
        stripe_customer_id=payments.create_customer(email=email, name=data.name),
    )
    db.add(user)
    db.commit()
    return MessageOut(message="User created successfully")


@router.post("/logout", response_model=MessageOut)
def logout(
    request: Request,
    response: Response,
    store: SessionStore = Depends(get_session_store),
    settings: Settings = Depends(get_settings_dep),
):
    token = session_token(request)
    if not token:
        return MessageOut(message="No active session to clear")
    store.revoke(token)
    clear_session_cookie(response, settings)
    return MessageOut(message="Session cleared successfully")


@router.get("/me", response_model=IdentityOut)
def me(session: Session = Depends(current_session)):
    return IdentityOut(
        id=session.user_id,
        name=session.display_name,
        email=session.email,
        subscription=session.subscription_tier,
    )
