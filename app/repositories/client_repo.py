from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.base import to_object_id
from app.models.client import Client


class ClientRepository:
    """Read access to clients (written by the client service)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["clients"]

    async def get_client(self, client_id: Any) -> Optional[Client]:
        oid = to_object_id(client_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            return Client(**doc)
        return None
