from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.models.base import to_object_id
from app.models.project import Project


class ProjectRepository:
    """Read access to projects (written by the project service)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["projects"]

    async def find_owned_active_project(self, project_id: Any, owner_id: ObjectId) -> Optional[Project]:
        """Get a project the owner created and has not archived."""
        oid = to_object_id(project_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({
            "_id": oid,
            "created_by": owner_id,
            "archived": {"$ne": True}
        })
        if doc:
            return Project(**doc)
        return None

    async def get_project(self, project_id: Any) -> Optional[Project]:
        """Get a project by ID, archived or not."""
        oid = to_object_id(project_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            return Project(**doc)
        return None
