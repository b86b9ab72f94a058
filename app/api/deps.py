"""FastAPI dependency injection for the delivery note routes."""
from bson import ObjectId
from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.exceptions import ValidationError
from app.db.mongo import get_db
from app.repositories.client_repo import ClientRepository
from app.repositories.delivery_note_repo import DeliveryNoteRepository
from app.repositories.project_repo import ProjectRepository
from app.repositories.user_repo import UserRepository
from app.services.delivery_note_service import DeliveryNoteService
from app.services.pdf_renderer import DeliveryNotePdfRenderer
from app.services.pinning_service import PinningClient


def get_pinning_client() -> PinningClient:
    return PinningClient.from_settings()


def get_pdf_renderer() -> DeliveryNotePdfRenderer:
    return DeliveryNotePdfRenderer()


def get_delivery_note_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    pinning: PinningClient = Depends(get_pinning_client),
    renderer: DeliveryNotePdfRenderer = Depends(get_pdf_renderer),
) -> DeliveryNoteService:
    """Provides a DeliveryNoteService with its repositories wired up."""
    return DeliveryNoteService(
        notes=DeliveryNoteRepository(db),
        projects=ProjectRepository(db),
        clients=ClientRepository(db),
        users=UserRepository(db),
        renderer=renderer,
        pinning=pinning,
    )


def parse_object_id(value: str, label: str) -> ObjectId:
    if not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label} ID.")
    return ObjectId(value)


def note_id_path(id: str) -> ObjectId:
    """The {id} path parameter as an ObjectId, 400 when malformed."""
    return parse_object_id(id, "delivery note")
