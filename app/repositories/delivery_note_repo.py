from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import ConflictError
from app.models.base import to_object_id
from app.models.delivery_note import DeliveryNote

DUPLICATE_NUMBER_MESSAGE = "Delivery note number already exists for this user."


class DeliveryNoteRepository:
    """Delivery note database operations.

    Every mutating query is conditional on ``is_signed: False`` so a note
    that got signed in the meantime is never modified or removed.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.collection = db["delivery_notes"]

    async def insert(self, note: DeliveryNote) -> DeliveryNote:
        """Insert a new note. Raises ConflictError on a duplicate number."""
        try:
            await self.collection.insert_one(note.model_dump(by_alias=True))
        except DuplicateKeyError as e:
            raise ConflictError(DUPLICATE_NUMBER_MESSAGE) from e
        return note

    async def get_owned(self, note_id: Any, owner_id: ObjectId) -> Optional[DeliveryNote]:
        """Get a note by id if it belongs to the owner."""
        oid = to_object_id(note_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid, "owner_id": owner_id})
        if doc:
            return DeliveryNote(**doc)
        return None

    async def get_by_id(self, note_id: Any) -> Optional[DeliveryNote]:
        """Get a note by id regardless of owner (download access is checked separately)."""
        oid = to_object_id(note_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            return DeliveryNote(**doc)
        return None

    async def list_owned(
        self,
        owner_id: ObjectId,
        project_id: Optional[ObjectId] = None,
        client_id: Optional[ObjectId] = None,
        is_signed: Optional[bool] = None,
    ) -> List[DeliveryNote]:
        """List the owner's notes, newest date first."""
        query: Dict[str, Any] = {"owner_id": owner_id}
        if project_id is not None:
            query["project_id"] = project_id
        if client_id is not None:
            query["client_id"] = client_id
        if is_signed is not None:
            query["is_signed"] = is_signed

        cursor = self.collection.find(query).sort("date", -1)
        docs = await cursor.to_list(None)
        return [DeliveryNote(**doc) for doc in docs]

    async def number_exists(
        self,
        owner_id: ObjectId,
        note_number: str,
        exclude_id: Optional[ObjectId] = None,
    ) -> bool:
        query: Dict[str, Any] = {"owner_id": owner_id, "note_number": note_number}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return await self.collection.find_one(query, {"_id": 1}) is not None

    async def update_unsigned(
        self,
        note_id: ObjectId,
        owner_id: ObjectId,
        updates: Dict[str, Any],
    ) -> Optional[DeliveryNote]:
        """
        Apply updates to a note that is still unsigned.

        Returns None when no unsigned note owned by the owner matches, which
        includes the case of a note signed after it was read.
        """
        updates = {**updates, "updated_at": datetime.now(timezone.utc)}
        try:
            result = await self.collection.find_one_and_update(
                {"_id": note_id, "owner_id": owner_id, "is_signed": False},
                {"$set": updates},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            raise ConflictError(DUPLICATE_NUMBER_MESSAGE) from e

        if result:
            return DeliveryNote(**result)
        return None

    async def finalize_signature(
        self,
        note_id: ObjectId,
        owner_id: ObjectId,
        signed_at: datetime,
        signature_url: str,
        pdf_url: str,
    ) -> Optional[DeliveryNote]:
        """
        Commit the signed state in one conditional write.

        Returns None when the note was signed by someone else first.
        """
        result = await self.collection.find_one_and_update(
            {"_id": note_id, "owner_id": owner_id, "is_signed": False},
            {
                "$set": {
                    "is_signed": True,
                    "signed_at": signed_at,
                    "signature_url": signature_url,
                    "pdf_url": pdf_url,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if result:
            return DeliveryNote(**result)
        return None

    async def delete_unsigned(self, note_id: ObjectId, owner_id: ObjectId) -> bool:
        """Hard delete an unsigned note. Returns False if nothing was removed."""
        result = await self.collection.delete_one(
            {"_id": note_id, "owner_id": owner_id, "is_signed": False}
        )
        return result.deleted_count > 0
