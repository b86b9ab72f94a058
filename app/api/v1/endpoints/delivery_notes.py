from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse

from app.api.deps import get_delivery_note_service, note_id_path, parse_object_id
from app.core.auth import get_current_user
from app.models.user import UserInDB
from app.schemas.delivery_note import (
    DeliveryNoteCreate,
    DeliveryNoteEnvelope,
    DeliveryNoteListEnvelope,
    DeliveryNoteResponse,
    DeliveryNoteSign,
    DeliveryNoteUpdate,
    MessageResponse,
)
from app.services.delivery_note_service import DeliveryNoteService

router = APIRouter()


@router.post("", response_model=DeliveryNoteEnvelope, status_code=status.HTTP_201_CREATED)
async def create_delivery_note(
    note_in: DeliveryNoteCreate,
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """Create a new delivery note"""
    populated = await service.create(current_user.id, note_in)
    return DeliveryNoteEnvelope(
        message="Delivery note created successfully.",
        data=DeliveryNoteResponse.from_populated(populated)
    )


@router.get("", response_model=DeliveryNoteListEnvelope)
async def list_delivery_notes(
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    is_signed: Optional[bool] = Query(default=None, alias="isSigned"),
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """List the current user's delivery notes, newest first"""
    notes = await service.list_notes(
        current_user.id,
        project_id=parse_object_id(project_id, "project") if project_id else None,
        client_id=parse_object_id(client_id, "client") if client_id else None,
        is_signed=is_signed
    )
    data = [DeliveryNoteResponse.from_populated(populated) for populated in notes]
    return DeliveryNoteListEnvelope(
        message="Delivery notes retrieved successfully.",
        count=len(data),
        data=data
    )


@router.get("/pdf/{id}")
async def download_delivery_note_pdf(
    note_id: ObjectId = Depends(note_id_path),
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """Download the signed PDF (owner or company guest)"""
    download = await service.download_pdf(current_user, note_id)
    disposition = f'attachment; filename="{download.filename}"'

    if download.redirect_url:
        return RedirectResponse(
            download.redirect_url,
            status_code=status.HTTP_302_FOUND,
            headers={"Content-Disposition": disposition}
        )
    return Response(
        content=download.content,
        media_type="application/pdf",
        headers={"Content-Disposition": disposition}
    )


@router.get("/{id}", response_model=DeliveryNoteEnvelope)
async def get_delivery_note(
    note_id: ObjectId = Depends(note_id_path),
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """Get a delivery note by ID"""
    populated = await service.get(current_user.id, note_id)
    return DeliveryNoteEnvelope(
        message="Delivery note retrieved successfully.",
        data=DeliveryNoteResponse.from_populated(populated)
    )


@router.api_route("/{id}", methods=["PUT", "PATCH"], response_model=DeliveryNoteEnvelope)
async def update_delivery_note(
    note_in: DeliveryNoteUpdate,
    note_id: ObjectId = Depends(note_id_path),
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """Update an unsigned delivery note"""
    populated = await service.update(current_user.id, note_id, note_in)
    return DeliveryNoteEnvelope(
        message="Delivery note updated successfully.",
        data=DeliveryNoteResponse.from_populated(populated)
    )


@router.patch("/sign/{id}", response_model=DeliveryNoteEnvelope)
async def sign_delivery_note(
    sign_in: DeliveryNoteSign,
    note_id: ObjectId = Depends(note_id_path),
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """Sign a delivery note and pin its PDF to IPFS"""
    result = await service.sign(
        current_user.id, note_id, sign_in.signature_url, sign_in.signed_date
    )
    if result.already_signed:
        message = "Delivery note is already signed."
    else:
        message = "Delivery note signed and PDF uploaded successfully."
    return DeliveryNoteEnvelope(
        message=message,
        data=DeliveryNoteResponse.from_populated(result.populated)
    )


@router.delete("/{id}", response_model=MessageResponse)
async def delete_delivery_note(
    note_id: ObjectId = Depends(note_id_path),
    current_user: UserInDB = Depends(get_current_user),
    service: DeliveryNoteService = Depends(get_delivery_note_service)
):
    """Delete an unsigned delivery note"""
    await service.delete(current_user.id, note_id)
    return MessageResponse(message="Delivery note deleted successfully.")
