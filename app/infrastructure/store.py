"""In-process document store.

Holds one collection of pydantic records per resource kind. Reads return
the current snapshot; writes replace the stored record. There is no
locking: a concurrent write between an authorization check and the
mutation that follows it is not prevented.
"""
import uuid
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from app.core.logging import get_logger
from app.domain.principal import Account
from app.domain.resources import Message, Room, RoomKind, Submission, Task

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Global rooms, one per learning level
DEFAULT_ROOMS = {
    "Beginner": "For new traders learning the basics of the markets.",
    "Intermediate": "For mid-level traders sharing strategies, chart analysis, and trading setups.",
    "Advanced": "For experienced traders discussing advanced risk management and execution.",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Collection(Generic[ModelT]):
    """A keyed set of records of one model type."""

    def __init__(self, name: str):
        self.name = name
        self._docs: Dict[str, ModelT] = {}

    def insert(self, doc: ModelT) -> ModelT:
        """Store ``doc``, assigning an id and timestamps when missing."""
        now = utcnow()
        changes = {"updated_at": now}
        if getattr(doc, "id", None) is None:
            changes["id"] = uuid.uuid4().hex
        if getattr(doc, "created_at", None) is None:
            changes["created_at"] = now
        stored = doc.model_copy(update=changes)
        self._docs[stored.id] = stored
        logger.debug(f"Inserted into {self.name}", extra={"resource_id": stored.id})
        return stored

    def get(self, doc_id: str) -> Optional[ModelT]:
        return self._docs.get(doc_id)

    def find(self, predicate: Optional[Callable[[ModelT], bool]] = None) -> List[ModelT]:
        docs = list(self._docs.values())
        if predicate is not None:
            docs = [doc for doc in docs if predicate(doc)]
        return sorted(docs, key=lambda doc: doc.created_at or utcnow(), reverse=True)

    def find_one(self, predicate: Callable[[ModelT], bool]) -> Optional[ModelT]:
        return next((doc for doc in self._docs.values() if predicate(doc)), None)

    def update(self, doc_id: str, **changes) -> Optional[ModelT]:
        """Apply ``changes`` to the stored record and return the new version."""
        current = self._docs.get(doc_id)
        if current is None:
            return None
        changes.setdefault("updated_at", utcnow())
        updated = current.model_copy(update=changes)
        self._docs[doc_id] = updated
        return updated

    def delete(self, doc_id: str) -> bool:
        return self._docs.pop(doc_id, None) is not None

    def __len__(self) -> int:
        return len(self._docs)


class DocumentStore:
    """The platform's collections."""

    def __init__(self):
        self.users: Collection[Account] = Collection("users")
        self.tasks: Collection[Task] = Collection("tasks")
        self.submissions: Collection[Submission] = Collection("submissions")
        self.rooms: Collection[Room] = Collection("rooms")
        self.messages: Collection[Message] = Collection("messages")

    def find_user_by_email(self, email: str) -> Optional[Account]:
        needle = email.strip().lower()
        return self.users.find_one(lambda account: account.email.lower() == needle)

    def seed_rooms(self) -> List[Room]:
        """Create the level rooms if they do not exist yet."""
        existing = {room.name for room in self.rooms.find()}
        for name, description in DEFAULT_ROOMS.items():
            if name not in existing:
                self.rooms.insert(Room(name=name, description=description, kind=RoomKind.GLOBAL))
        return self.rooms.find(lambda room: room.kind == RoomKind.GLOBAL)


@lru_cache(maxsize=1)
def get_store() -> DocumentStore:
    """Process-wide store, created once with the level rooms seeded."""
    store = DocumentStore()
    store.seed_rooms()
    logger.info("Document store initialized")
    return store
