# Filename: neodrive/utils.py
from dataclasses import dataclass
from typing import Optional, Union

from fastapi import HTTPException, status

from .sessions import Session


@dataclass(frozen=True)
class Authorized:
    session: Session


@dataclass(frozen=True)
class Unauthenticated:
    pass


@dataclass(frozen=True)
class Forbidden:
    session: Session


def authorize(session: Optional[Session], resource_owner_id: str) -> Union[Authorized, Unauthenticated, Forbidden]:
    if session is None:
        return Unauthenticated()
    if session.user_id != resource_owner_id:
        return Forbidden(session)
    return Authorized(session)


def ensure_owner(session: Optional[Session], resource_owner_id: str) -> Session:
    result = authorize(session, resource_owner_id)
    if isinstance(result, Unauthenticated):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    if isinstance(result, Forbidden):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    return result.session
