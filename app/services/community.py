"""Community rooms and messages.

Global rooms are level-gated for students; direct rooms are limited to
their participants. The principal passed in must carry the stored
learning level (see ``AccountService.load_principal``), not just the
claims from the credential.
"""
import uuid
from typing import Any, Dict, List, Optional

from app.core.errors import Conflict, NotFound
from app.core.learning_level import has_completed_onboarding
from app.core.logging import get_logger
from app.core.policy import AuthorizationPolicy
from app.domain.principal import Principal
from app.domain.resources import Action, Message, Room, RoomKind
from app.infrastructure.store import DocumentStore
from app.services.notifications import NullPublisher, Publisher

logger = get_logger(__name__)

MAX_MESSAGE_LENGTH = 5000


class CommunityService:
    def __init__(
        self,
        store: DocumentStore,
        policy: AuthorizationPolicy,
        publisher: Optional[Publisher] = None,
    ):
        self.store = store
        self.policy = policy
        self.publisher = publisher or NullPublisher()

    def _get_room(self, room_id: str) -> Room:
        room = self.store.rooms.get(room_id)
        if room is None:
            raise NotFound("Room not found")
        return room

    def list_rooms(self, principal: Principal) -> List[Dict[str, Any]]:
        """Rooms the principal can see, each flagged ``locked`` if it cannot be entered.

        Direct rooms the principal is not part of are left out entirely, and
        students who have not finished onboarding see no rooms at all.
        """
        if not has_completed_onboarding(principal):
            return []

        rooms = []
        for room in self.store.rooms.find():
            if room.kind == RoomKind.DIRECT and principal.id not in room.participants:
                continue
            unread = len(self.store.messages.find(
                lambda m: m.room_id == room.id
                and m.sender_id != principal.id
                and principal.id not in m.seen_by
            ))
            rooms.append({
                "id": room.id,
                "name": room.name,
                "kind": room.kind.value,
                "description": room.description,
                "locked": not self.policy.is_allowed(principal, Action.READ, room),
                "unread": unread,
            })
        return sorted(rooms, key=lambda r: r["name"])

    def list_messages(self, principal: Principal, room_id: str) -> List[Message]:
        room = self._get_room(room_id)
        self.policy.authorize(principal, Action.READ, room)
        messages = self.store.messages.find(lambda m: m.room_id == room.id)
        return list(reversed(messages))

    def post_message(self, principal: Principal, room_id: str, content: str) -> Message:
        if not content or not content.strip():
            raise Conflict("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise Conflict(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

        room = self._get_room(room_id)
        self.policy.authorize(principal, Action.POST, room)

        message = self.store.messages.insert(Message(
            id=uuid.uuid4().hex,
            room_id=room.id,
            sender_id=principal.id,
            content=content.strip(),
            seen_by=[principal.id],
        ))
        self.publisher.publish(
            f"room:{room.id}",
            "newMessage",
            {"messageId": message.id, "roomId": room.id, "senderId": principal.id, "content": message.content},
        )
        return message

    def delete_message(self, principal: Principal, message_id: str) -> None:
        message = self.store.messages.get(message_id)
        if message is None:
            raise NotFound("Message not found")
        self.policy.authorize(principal, Action.DELETE, message)

        self.store.messages.delete(message.id)
        self.publisher.publish(
            f"room:{message.room_id}",
            "messageDeleted",
            {"messageId": message.id, "roomId": message.room_id},
        )
        logger.info("Message deleted", extra={"principal_id": principal.id, "resource_id": message.id})
