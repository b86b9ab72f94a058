from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.base import MongoModel, PyObjectId, _utcnow
from app.models.client import Client
from app.models.project import Project
from app.models.user import UserInDB


# Embedded documents don't need MongoModel (no separate collection)
class DeliveryNoteItem(BaseModel):
    item_id: PyObjectId = Field(default_factory=PyObjectId)
    description: str
    quantity: float  # hours or units, fractional allowed
    unit_price: Optional[float] = None  # absent for plain hour records
    person: Optional[str] = None  # who did the hours

    @property
    def line_total(self) -> float:
        return self.quantity * (self.unit_price or 0)


class DeliveryNote(MongoModel):
    note_number: str
    project_id: PyObjectId
    client_id: PyObjectId  # derived from the project, never set directly
    owner_id: PyObjectId
    date: datetime = Field(default_factory=_utcnow)
    items: List[DeliveryNoteItem] = []
    notes: Optional[str] = None

    is_signed: bool = False
    signed_at: Optional[datetime] = None
    signature_url: Optional[str] = None  # CID of the signature image
    pdf_url: Optional[str] = None  # CID of the signed PDF

    @property
    def total_amount(self) -> float:
        return sum(item.line_total for item in self.items)

    @property
    def has_priced_items(self) -> bool:
        return any(item.unit_price is not None for item in self.items)


class PopulatedDeliveryNote(BaseModel):
    """A note with its references resolved, as rendered and returned to clients."""
    note: DeliveryNote
    owner: Optional[UserInDB] = None
    client: Optional[Client] = None
    project: Optional[Project] = None
    signature_gateway_url: Optional[str] = None
    pdf_gateway_url: Optional[str] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)
