"""
User registry: owns User records.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog
from bson import ObjectId

from .database import USERS, MongoDBManager, exact_text
from .errors import NotFoundError, ValidationError
from .models import ById, ByName, EntityRef, User, to_object_id

logger = structlog.get_logger(__name__)


class UserRegistry:
    """Create, list and resolve users."""

    def __init__(self, store: MongoDBManager):
        self.store = store

    async def add_user(self, name: Any) -> str:
        """Register a user and return the assigned id."""
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Name is required")

        user_id = await self.store.insert_one(USERS, {"name": name.strip()})
        logger.info("User added", user_id=user_id)
        return user_id

    async def list_users(self) -> List[User]:
        documents = await self.store.find(USERS)
        return [User.from_document(doc) for doc in documents]

    async def find_user(self, ref: EntityRef) -> Optional[User]:
        """Resolve a user by id or name, None if it does not exist."""
        if isinstance(ref, ById):
            document = await self.store.find_by_id(USERS, to_object_id(ref.id, "userId"))
        elif isinstance(ref, ByName):
            document = await self.store.find_one(
                USERS, {"name": exact_text(ref.name, ref.ignore_case)}
            )
        else:
            raise ValidationError("userId or username is required")
        return User.from_document(document) if document else None

    async def get_user(self, ref: EntityRef) -> User:
        """Resolve a user or raise NotFoundError."""
        user = await self.find_user(ref)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Load the users among the given ids; ids that do not resolve are left out."""
        object_ids = {ObjectId(user_id) for user_id in user_ids if ObjectId.is_valid(user_id)}
        if not object_ids:
            return {}
        documents = await self.store.find(USERS, {"_id": {"$in": list(object_ids)}})
        return {str(doc["_id"]): User.from_document(doc) for doc in documents}
