from typing import Optional

from bson import ObjectId

from app.core.exceptions import ForbiddenError
from app.models.delivery_note import DeliveryNote
from app.models.user import UserInDB


class AccessGate:
    """Decides who may see a delivery note beyond the owner-scoped queries."""

    @staticmethod
    def is_owner(requester_id: ObjectId, note: DeliveryNote) -> bool:
        return note.owner_id == requester_id

    @staticmethod
    def is_company_guest(requester: UserInDB, owner: Optional[UserInDB]) -> bool:
        """A guest shares the owner's company but is not the owner."""
        if owner is None or requester.id == owner.id:
            return False
        return (
            requester.company_id is not None
            and owner.company_id is not None
            and requester.company_id == owner.company_id
        )

    @staticmethod
    def ensure_can_download(
        requester: UserInDB,
        note: DeliveryNote,
        owner: Optional[UserInDB],
    ) -> None:
        """Owners and company guests may download; anyone else is refused."""
        if AccessGate.is_owner(requester.id, note):
            return
        if AccessGate.is_company_guest(requester, owner):
            return
        raise ForbiddenError(
            "You do not have permission to download this PDF.",
            error="forbidden_download",
        )
