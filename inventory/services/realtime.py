"""Live push channel.

Connections are grouped by ``user-<id>`` and ``role-<name>``. Which
connection belongs to which group lives in a ``ConnectionRegistry``
injected into the hub: the in-memory registry serves a single process, a
shared-store registry can implement the same interface for several.

A connection is anything with an awaitable ``send_json(dict)``, such as a
Starlette ``WebSocket``. Every message has the shape
``{"event": <name>, "data": {...}}``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# Push event names
CONNECTION_ESTABLISHED = "connection_established"
RECEIVE_NOTIFICATION = "receive_notification"
PENDING_NOTIFICATION = "pending_notification"
PENDING_NOTIFICATIONS_COMPLETE = "pending_notifications_complete"
REFRESH_APPROVALS = "refresh_approvals"


def user_group(user_id: int) -> str:
    return f"user-{user_id}"


def role_group(role_name: str) -> str:
    return f"role-{role_name}"


class ConnectionRegistry(ABC):
    """Which live connections are in which group."""

    @abstractmethod
    async def add(self, group: str, connection: Any) -> None:
        ...

    @abstractmethod
    async def remove(self, connection: Any) -> Set[str]:
        """Drop a connection from every group; returns the groups it was in."""

    @abstractmethod
    async def get(self, group: str) -> List[Any]:
        ...

    @abstractmethod
    async def groups(self) -> Dict[str, int]:
        """Group name -> number of connections."""


class InMemoryConnectionRegistry(ConnectionRegistry):
    def __init__(self):
        self._groups: Dict[str, Set[Any]] = {}
        self._lock = asyncio.Lock()

    async def add(self, group: str, connection: Any) -> None:
        async with self._lock:
            self._groups.setdefault(group, set()).add(connection)

    async def remove(self, connection: Any) -> Set[str]:
        removed = set()
        async with self._lock:
            for group in list(self._groups):
                members = self._groups[group]
                if connection in members:
                    members.discard(connection)
                    removed.add(group)
                if not members:
                    del self._groups[group]
        return removed

    async def get(self, group: str) -> List[Any]:
        async with self._lock:
            return list(self._groups.get(group, ()))

    async def groups(self) -> Dict[str, int]:
        async with self._lock:
            return {group: len(members) for group, members in self._groups.items()}


class NotificationHub:
    """Group-addressed push to connected sessions."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def connect(self, connection: Any, user_id: int, role_name: Optional[str] = None) -> List[str]:
        groups = [user_group(user_id)]
        if role_name:
            groups.append(role_group(role_name))
        for group in groups:
            await self.registry.add(group, connection)

        await connection.send_json({
            "event": CONNECTION_ESTABLISHED,
            "data": {"user_id": user_id, "groups": groups},
        })
        logger.info(f"User {user_id} connected to {', '.join(groups)}")
        return groups

    async def disconnect(self, connection: Any) -> None:
        groups = await self.registry.remove(connection)
        if groups:
            logger.info(f"Connection left {', '.join(sorted(groups))}")

    async def send_to_group(self, group: str, event: str, data: Dict[str, Any]) -> int:
        """Push to every connection in a group. Returns the number reached."""
        delivered = 0
        for connection in await self.registry.get(group):
            try:
                await connection.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping dead connection in {group}: {e}")
                await self.registry.remove(connection)
        return delivered

    async def send_to_user(self, user_id: int, event: str, data: Dict[str, Any]) -> int:
        return await self.send_to_group(user_group(user_id), event, data)

    async def send_to_role(self, role_name: str, event: str, data: Dict[str, Any]) -> int:
        return await self.send_to_group(role_group(role_name), event, data)
