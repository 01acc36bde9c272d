from functools import lru_cache
from typing import Callable, Generator

from fastapi import Depends, HTTPException, status
from fastapi.requests import HTTPConnection
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from inventory.core.approval import Actor
from inventory.core.security import InternalCaller, decode_internal_token, decode_token
from inventory.db.models import User
from inventory.db.session import SessionLocal
from inventory.messaging.publisher import EventPublisher
from inventory.services.executor import ActionExecutor
from inventory.services.realtime import InMemoryConnectionRegistry, NotificationHub

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """Get current authenticated user from a bearer JWT."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not token:
        raise credentials_exception

    user_id = decode_token(token)
    if user_id is None:
        raise credentials_exception

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise credentials_exception
    return user


def get_actor(current_user: User = Depends(get_current_user)) -> Actor:
    return Actor.from_user(current_user)


def get_internal_caller(token: str = Depends(oauth2_scheme)) -> InternalCaller:
    """Only the action executor's replay credential gets through."""
    caller = decode_internal_token(token) if token else None
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Internal endpoint",
        )
    return caller


@lru_cache
def get_publisher() -> EventPublisher:
    return EventPublisher()


@lru_cache
def get_executor() -> ActionExecutor:
    return ActionExecutor()


def get_hub(connection: HTTPConnection) -> NotificationHub:
    """The app-wide hub; works for HTTP requests and WebSockets."""
    hub = getattr(connection.app.state, "hub", None)
    if hub is None:
        hub = NotificationHub(InMemoryConnectionRegistry())
        connection.app.state.hub = hub
    return hub
