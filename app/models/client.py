from typing import Optional

from app.models.base import MongoModel, OwnedMixin, ArchivableMixin, CompanyScopedMixin


class Client(MongoModel, OwnedMixin, ArchivableMixin, CompanyScopedMixin):
    """Read model for the clients collection (managed by the client service)."""
    name: str
    email: Optional[str] = None
    cif: Optional[str] = None  # tax id
    address: Optional[str] = None
