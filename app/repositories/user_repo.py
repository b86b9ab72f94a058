from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.base import to_object_id
from app.models.user import UserInDB


class UserRepository:
    """User database operations (identity lookups only)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["users"]

    async def get_user_by_id(self, user_id: Any) -> UserInDB | None:
        """Get user by ID."""
        oid = to_object_id(user_id)
        if oid is None:
            return None
        user = await self.collection.find_one({
            "_id": oid,
            "is_deleted": {"$ne": True}
        })
        if user:
            return UserInDB(**user)
        return None

