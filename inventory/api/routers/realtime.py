"""Notification push channel.

Clients connect to ``/ws/notifications?token=<jwt>``, join their user
group and their role group, and receive unread notifications before live
ones. The database is only touched while authenticating and replaying;
an idle socket holds no connection.
"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from inventory.api.deps import get_hub, get_session_factory
from inventory.core.security import decode_token
from inventory.db.models import User
from inventory.services.notifications import NotificationService
from inventory.services.realtime import NotificationHub

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

WS_CLOSE_UNAUTHORIZED = 4401


@router.websocket("/ws/notifications")
async def notifications_ws(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    hub: NotificationHub = Depends(get_hub),
) -> None:
    user_id = decode_token(token) if token else None
    db = session_factory()
    try:
        user = db.get(User, user_id) if user_id is not None else None
        if user is None or not user.is_active:
            await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
            return
        role_name = user.role.name if user.role else None
    finally:
        db.close()

    await websocket.accept()
    await hub.connect(websocket, user_id, role_name)
    try:
        db = session_factory()
        try:
            await NotificationService(db, hub).replay_pending(websocket, user_id)
        finally:
            db.close()
        while True:
            # Clients only listen; inbound frames are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"User {user_id} disconnected")
    finally:
        await hub.disconnect(websocket)
