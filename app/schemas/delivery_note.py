from datetime import datetime
from typing import Annotated, List, Optional

from bson import ObjectId
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.delivery_note import PopulatedDeliveryNote


def _check_object_id(value: str) -> str:
    if not ObjectId.is_valid(value):
        raise ValueError("Invalid ObjectId")
    return value


ObjectIdStr = Annotated[str, AfterValidator(_check_object_id)]


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


# ─── Requests ───

class DeliveryNoteItemIn(CamelModel):
    description: str
    quantity: float
    unit_price: Optional[float] = None
    person: Optional[str] = None


class DeliveryNoteCreate(CamelModel):
    note_number: str = Field(min_length=1)
    project_id: ObjectIdStr
    date: Optional[datetime] = None
    items: List[DeliveryNoteItemIn]
    notes: Optional[str] = None


class DeliveryNoteUpdate(CamelModel):
    """Partial update. Signature, owner and client fields are not accepted and get dropped."""
    note_number: Optional[str] = Field(default=None, min_length=1)
    project_id: Optional[ObjectIdStr] = None
    date: Optional[datetime] = None
    items: Optional[List[DeliveryNoteItemIn]] = None
    notes: Optional[str] = None


class DeliveryNoteSign(CamelModel):
    signature_url: Optional[str] = None  # IPFS CID or cloud link of the signature image
    signed_date: Optional[datetime] = None


# ─── Responses ───

class OwnerSummary(CamelModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class ClientSummary(CamelModel):
    id: str
    name: str
    email: Optional[str] = None


class ProjectSummary(CamelModel):
    id: str
    name: str
    description: Optional[str] = None


class DeliveryNoteItemResponse(CamelModel):
    item_id: str
    description: str
    quantity: float
    unit_price: Optional[float] = None
    person: Optional[str] = None
    line_total: float


class DeliveryNoteResponse(CamelModel):
    id: str
    note_number: str
    date: datetime
    project_id: str
    client_id: str
    owner_id: str
    project: Optional[ProjectSummary] = None
    client: Optional[ClientSummary] = None
    owner: Optional[OwnerSummary] = None
    items: List[DeliveryNoteItemResponse] = []
    notes: Optional[str] = None
    total_amount: float = 0
    is_signed: bool = False
    signed_at: Optional[datetime] = None
    signature_url: Optional[str] = None
    pdf_url: Optional[str] = None
    signature_gateway_url: Optional[str] = None
    pdf_gateway_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_populated(cls, populated: PopulatedDeliveryNote) -> "DeliveryNoteResponse":
        note = populated.note
        owner = populated.owner
        client = populated.client
        project = populated.project
        return cls(
            id=str(note.id),
            note_number=note.note_number,
            date=note.date,
            project_id=str(note.project_id),
            client_id=str(note.client_id),
            owner_id=str(note.owner_id),
            project=ProjectSummary(
                id=str(project.id), name=project.name, description=project.description
            ) if project else None,
            client=ClientSummary(
                id=str(client.id), name=client.name, email=client.email
            ) if client else None,
            owner=OwnerSummary(
                id=str(owner.id),
                email=owner.email,
                first_name=owner.first_name,
                last_name=owner.last_name
            ) if owner else None,
            items=[
                DeliveryNoteItemResponse(
                    item_id=str(item.item_id),
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    person=item.person,
                    line_total=item.line_total
                )
                for item in note.items
            ],
            notes=note.notes,
            total_amount=note.total_amount,
            is_signed=note.is_signed,
            signed_at=note.signed_at,
            signature_url=note.signature_url,
            pdf_url=note.pdf_url,
            signature_gateway_url=populated.signature_gateway_url,
            pdf_gateway_url=populated.pdf_gateway_url,
            created_at=note.created_at,
            updated_at=note.updated_at
        )


class DeliveryNoteEnvelope(BaseModel):
    message: str
    data: DeliveryNoteResponse


class DeliveryNoteListEnvelope(BaseModel):
    message: str
    count: int
    data: List[DeliveryNoteResponse]


class MessageResponse(BaseModel):
    message: str
