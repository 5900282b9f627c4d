"""
Outbound notification port.

Conversation and message operations announce what happened through a
``Notifier``; they never wait on or fail because of delivery. The default
implementation pushes to the recipient's live websockets, any other
transport (a pub/sub bus, a push gateway) can be swapped in by overriding
the ``get_notifier`` dependency.
"""
from abc import ABC, abstractmethod
from typing import Iterable, List
from uuid import UUID

from app.core.config import settings
from app.core.websocket import ConnectionManager, manager
from app.utils.logger import get_logger

logger = get_logger(__name__)

MESSAGE_NEW = "message:new"
MESSAGE_SEEN = "message:seen"
TYPING_START = "typing:start"
TYPING_STOP = "typing:stop"


class Notifier(ABC):
    @abstractmethod
    async def send(self, user_id: str, event: str, payload: dict) -> None:
        """Deliver one event to every live connection of ``user_id``."""


class WebSocketNotifier(Notifier):
    def __init__(self, connections: ConnectionManager):
        self.connections = connections

    async def send(self, user_id: str, event: str, payload: dict) -> None:
        await self.connections.send_event(user_id, event, payload)


class NullNotifier(Notifier):
    async def send(self, user_id: str, event: str, payload: dict) -> None:
        return None


async def notify_users(notifier: Notifier, user_ids: Iterable, event: str, payload: dict) -> List[str]:
    """
    Attempt delivery of ``event`` to each user.

    Never raises: a failing recipient is logged and skipped. Returns the ids
    that were attempted without error.
    """
    delivered = []
    for user_id in user_ids:
        user_key = str(user_id) if isinstance(user_id, UUID) else user_id
        try:
            await notifier.send(user_key, event, payload)
            delivered.append(user_key)
        except Exception:
            logger.warning("Failed to deliver %s to user %s", event, user_key, exc_info=True)
    return delivered


_default_notifier: Notifier = WebSocketNotifier(manager) if settings.REALTIME_ENABLED else NullNotifier()


def get_notifier() -> Notifier:
    return _default_notifier
