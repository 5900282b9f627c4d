import json
import time
from typing import Dict, Iterable, Set, Tuple
from fastapi import WebSocket
from app.utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    def __init__(self):
        # Store active connections: {user_id: set of websockets}
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # Last typing:start relay per (user_id, conversation_id)
        self._typing_last_emit: Dict[Tuple[str, str], float] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        """Accept a websocket and register it for the user"""
        await websocket.accept()
        first_connection = user_id not in self.active_connections
        self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info("User %s connected (%d sockets)", user_id, len(self.active_connections[user_id]))
        if first_connection:
            await self.broadcast_user_status(user_id, "online")

    async def disconnect(self, websocket: WebSocket, user_id: str):
        """Forget a websocket; announces offline when it was the user's last one"""
        sockets = self.active_connections.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self.active_connections[user_id]
            self._typing_last_emit = {
                key: ts for key, ts in self._typing_last_emit.items() if key[0] != user_id
            }
            await self.broadcast_user_status(user_id, "offline")
        logger.info("User %s disconnected", user_id)

    def is_online(self, user_id: str) -> bool:
        return user_id in self.active_connections

    async def send_personal_message(self, message: str, user_id: str) -> int:
        """
        Send a text frame to every socket of a user.

        Returns the number of sockets written to. Sockets that fail are dropped
        and the first failure is re-raised once the rest have been tried.
        """
        sockets = list(self.active_connections.get(user_id, ()))
        delivered = 0
        failure = None
        for websocket in sockets:
            try:
                await websocket.send_text(message)
                delivered += 1
            except Exception as exc:
                failure = failure or exc
                self.active_connections.get(user_id, set()).discard(websocket)
        if user_id in self.active_connections and not self.active_connections[user_id]:
            del self.active_connections[user_id]
        if failure is not None:
            raise failure
        return delivered

    async def send_event(self, user_id: str, event: str, payload: dict) -> int:
        return await self.send_personal_message(
            json.dumps({"type": event, "data": payload}, ensure_ascii=False, default=str),
            user_id,
        )

    def should_relay_typing(self, user_id: str, conversation_id: str, interval: float = 1.0) -> bool:
        """Throttle typing:start relays to one per interval per user and conversation"""
        key = (user_id, conversation_id)
        now = time.monotonic()
        last = self._typing_last_emit.get(key)
        if last is not None and now - last < interval:
            return False
        self._typing_last_emit[key] = now
        return True

    async def broadcast_user_status(self, user_id: str, status: str, recipients: Iterable[str] = None):
        """Broadcast online/offline status to connected users"""
        targets = list(recipients) if recipients is not None else list(self.active_connections.keys())
        for connected_user_id in targets:
            if connected_user_id == user_id:
                continue
            try:
                await self.send_event(connected_user_id, "user:status", {"userId": user_id, "status": status})
            except Exception as exc:
                logger.debug("Status broadcast to %s failed: %s", connected_user_id, exc)

# Global connection manager instance
manager = ConnectionManager()
