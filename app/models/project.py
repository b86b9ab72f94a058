from typing import Optional

from app.models.base import (
    MongoModel,
    PyObjectId,
    OwnedMixin,
    ArchivableMixin,
    CompanyScopedMixin,
)


class Project(MongoModel, OwnedMixin, ArchivableMixin, CompanyScopedMixin):
    """Read model for the projects collection (managed by the project service)."""
    name: str
    description: Optional[str] = None
    client_id: PyObjectId
