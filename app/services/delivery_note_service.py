"""Delivery note lifecycle.

A note is created as a draft, can be edited or deleted while unsigned, and
is signed exactly once. Signing renders the note to PDF and pins it to IPFS
before anything is written, then commits the signed state with a single
conditional update; if that commit does not happen the pinned PDF is
unpinned again.
"""
import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pydantic import BaseModel
from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.exceptions import (
    AppException,
    ConflictError,
    DependencyFailure,
    ForbiddenError,
    NotFoundError,
    RenderError,
    ValidationError,
)
from app.models.delivery_note import DeliveryNote, PopulatedDeliveryNote
from app.models.project import Project
from app.models.user import UserInDB
from app.repositories.delivery_note_repo import DUPLICATE_NUMBER_MESSAGE
from app.services.access_gate import AccessGate
from app.utils.delivery_note_validation import normalize_items, validate_items

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Delivery note not found or you do not have permission."
PROJECT_NOT_FOUND_MESSAGE = "Project not found, archived, or does not belong to the user."
PDF_NOT_AVAILABLE_MESSAGE = "PDF is not available for this delivery note (it might not be signed yet)."

# Never writable through update; set only by create and sign
PROTECTED_FIELDS = ("is_signed", "signed_at", "signature_url", "pdf_url", "owner_id", "client_id")


@dataclass
class SignResult:
    populated: PopulatedDeliveryNote
    already_signed: bool


@dataclass
class PdfDownload:
    """Either a gateway URL to redirect to, or freshly rendered bytes."""
    filename: str
    redirect_url: Optional[str] = None
    content: Optional[bytes] = None


class SignLockRegistry:
    """One asyncio.Lock per note id, dropped once nobody holds a reference."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, note_id: Any) -> asyncio.Lock:
        key = str(note_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


sign_locks = SignLockRegistry()


class DeliveryNoteService:
    def __init__(
        self,
        notes,
        projects,
        clients,
        users,
        renderer,
        pinning,
        render_timeout: float = settings.RENDER_TIMEOUT_SECONDS,
        locks: SignLockRegistry = sign_locks,
    ):
        self.notes = notes
        self.projects = projects
        self.clients = clients
        self.users = users
        self.renderer = renderer
        self.pinning = pinning
        self.render_timeout = render_timeout
        self.locks = locks

    # ─── helpers ───

    async def _resolve_project(self, project_id: Any, owner_id: ObjectId) -> Project:
        project = await self.projects.find_owned_active_project(project_id, owner_id)
        if project is None:
            raise NotFoundError(PROJECT_NOT_FOUND_MESSAGE, error="project_not_found")
        return project

    async def _get_owned_or_404(self, note_id: Any, owner_id: ObjectId) -> DeliveryNote:
        note = await self.notes.get_owned(note_id, owner_id)
        if note is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return note

    @staticmethod
    async def _cached(
        cache: Dict[Tuple[str, Any], Any],
        kind: str,
        key: Any,
        fetch: Callable[[Any], Awaitable[Any]],
    ) -> Any:
        if (kind, key) not in cache:
            cache[(kind, key)] = await fetch(key)
        return cache[(kind, key)]

    async def _populate(
        self,
        note: DeliveryNote,
        cache: Optional[Dict[Tuple[str, Any], Any]] = None,
    ) -> PopulatedDeliveryNote:
        """Resolve owner, client and project, and the gateway URLs of both CIDs."""
        cache = {} if cache is None else cache
        owner = await self._cached(cache, "user", note.owner_id, self.users.get_user_by_id)
        client = await self._cached(cache, "client", note.client_id, self.clients.get_client)
        project = await self._cached(cache, "project", note.project_id, self.projects.get_project)
        return PopulatedDeliveryNote(
            note=note,
            owner=owner,
            client=client,
            project=project,
            signature_gateway_url=self.pinning.gateway_url_for(note.signature_url),
            pdf_gateway_url=self.pinning.gateway_url_for(note.pdf_url),
        )

    async def _render(self, populated: PopulatedDeliveryNote) -> bytes:
        """Render off the event loop, bounded by the render timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.renderer.render, populated),
                timeout=self.render_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("PDF generation for note %s timed out", populated.note.id)
            raise RenderError("PDF generation failed.", extra={"detail": "timeout"}) from e

    async def _compensate(self, cid: str) -> None:
        """Unpin a PDF whose signature was never committed."""
        try:
            await self.pinning.unpin(cid)
            logger.info("Compensated orphaned PDF upload %s", cid)
        except AppException as e:
            logger.error("Could not unpin orphaned PDF %s: %s", cid, e.message)

    # ─── operations ───

    async def create(self, owner_id: ObjectId, note_in) -> PopulatedDeliveryNote:
        """Create an unsigned note against a project the owner holds."""
        items = normalize_items(note_in.items)
        validate_items(items)

        note_number = note_in.note_number.strip()
        if not note_number:
            raise ValidationError("Delivery note number is required.")

        project = await self._resolve_project(note_in.project_id, owner_id)

        if await self.notes.number_exists(owner_id, note_number):
            raise ConflictError(DUPLICATE_NUMBER_MESSAGE)

        fields = {
            "note_number": note_number,
            "project_id": project.id,
            "client_id": project.client_id,
            "owner_id": owner_id,
            "items": items,
            "notes": note_in.notes,
        }
        if note_in.date is not None:
            fields["date"] = note_in.date
        note = await self.notes.insert(DeliveryNote(**fields))

        logger.info("Created delivery note %s (%s) for user %s", note.id, note.note_number, owner_id)
        return await self._populate(note)

    async def get(self, owner_id: ObjectId, note_id: Any) -> PopulatedDeliveryNote:
        note = await self._get_owned_or_404(note_id, owner_id)
        return await self._populate(note)

    async def list_notes(
        self,
        owner_id: ObjectId,
        project_id: Optional[ObjectId] = None,
        client_id: Optional[ObjectId] = None,
        is_signed: Optional[bool] = None,
    ) -> List[PopulatedDeliveryNote]:
        """List the owner's notes, newest first, optionally filtered."""
        notes = await self.notes.list_owned(
            owner_id, project_id=project_id, client_id=client_id, is_signed=is_signed
        )
        cache: Dict[Tuple[str, Any], Any] = {}
        return [await self._populate(note, cache) for note in notes]

    async def update(self, owner_id: ObjectId, note_id: Any, note_in) -> PopulatedDeliveryNote:
        """
        Apply a partial update to an unsigned note.

        Protected fields are dropped silently. A new project re-derives the
        client; a new number must stay unique for the owner; items, when
        given, are validated again.
        """
        note = await self._get_owned_or_404(note_id, owner_id)
        if note.is_signed:
            raise ForbiddenError("Cannot update a signed delivery note.", error="forbidden_update")

        if isinstance(note_in, BaseModel):
            changes = note_in.model_dump(exclude_unset=True)
        else:
            changes = dict(note_in)
        for field in PROTECTED_FIELDS:
            changes.pop(field, None)

        updates: Dict[str, Any] = {}

        if changes.get("note_number") is not None:
            note_number = changes["note_number"].strip()
            if not note_number:
                raise ValidationError("Delivery note number is required.")
            if note_number != note.note_number and await self.notes.number_exists(
                owner_id, note_number, exclude_id=note.id
            ):
                raise ConflictError(DUPLICATE_NUMBER_MESSAGE)
            updates["note_number"] = note_number

        if changes.get("project_id") is not None:
            project = await self._resolve_project(changes["project_id"], owner_id)
            updates["project_id"] = project.id
            updates["client_id"] = project.client_id

        if changes.get("date") is not None:
            updates["date"] = changes["date"]

        if "items" in changes:
            items = normalize_items(changes["items"])
            validate_items(items)
            updates["items"] = [item.model_dump() for item in items]

        if "notes" in changes:
            updates["notes"] = changes["notes"]

        updated = await self.notes.update_unsigned(note.id, owner_id, updates)
        if updated is None:
            # Signed or deleted between the read and the write
            current = await self.notes.get_owned(note.id, owner_id)
            if current is not None and current.is_signed:
                raise ForbiddenError("Cannot update a signed delivery note.", error="forbidden_update")
            raise NotFoundError(NOT_FOUND_MESSAGE)

        logger.info("Updated delivery note %s: %s", note.id, sorted(updates))
        return await self._populate(updated)

    async def sign(
        self,
        owner_id: ObjectId,
        note_id: Any,
        signature_url: Optional[str],
        signed_at: Optional[datetime] = None,
    ) -> SignResult:
        """
        Sign a note and pin its PDF.

        Signing an already signed note returns its current state and does
        not render or upload anything; a different signature_url on that
        path is not applied.
        """
        if not signature_url or not signature_url.strip():
            raise ValidationError("Signature URL (IPFS CID or cloud link) is required.")
        signature_url = signature_url.strip()

        async with self.locks.lock_for(note_id):
            note = await self._get_owned_or_404(note_id, owner_id)
            if note.is_signed:
                if note.signature_url != signature_url:
                    logger.warning(
                        "Delivery note %s is already signed, ignoring new signature URL", note.id
                    )
                else:
                    logger.info("Delivery note %s is already signed", note.id)
                return SignResult(await self._populate(note), already_signed=True)

            staged = note.model_copy(update={
                "is_signed": True,
                "signature_url": signature_url,
                "signed_at": signed_at or datetime.now(timezone.utc),
            })
            logger.info("Signing delivery note %s: staged", note.id)

            populated = await self._populate(staged)
            pdf_bytes = await self._render(populated)

            file_name = f"DeliveryNote_{note.note_number}_{int(time.time() * 1000)}.pdf"
            cid = await self.pinning.upload(pdf_bytes, file_name)
            logger.info("Signing delivery note %s: PDF uploaded as %s", note.id, cid)

            try:
                signed = await self.notes.finalize_signature(
                    note.id, owner_id, staged.signed_at, signature_url, cid
                )
            except PyMongoError as e:
                logger.error("Signing delivery note %s: commit failed: %s", note.id, e)
                await self._compensate(cid)
                raise DependencyFailure(
                    "Failed to sign delivery note.", error="signing_error", extra={"detail": str(e)}
                ) from e

            if signed is None:
                # Another process committed first
                logger.warning("Signing delivery note %s: lost the race, discarding %s", note.id, cid)
                await self._compensate(cid)
                current = await self._get_owned_or_404(note.id, owner_id)
                return SignResult(await self._populate(current), already_signed=True)

            logger.info("Signing delivery note %s: committed", note.id)
            return SignResult(await self._populate(signed), already_signed=False)

    async def delete(self, owner_id: ObjectId, note_id: Any) -> None:
        """Hard delete an unsigned note."""
        note = await self._get_owned_or_404(note_id, owner_id)
        if note.is_signed:
            raise ForbiddenError("Cannot delete a signed delivery note.", error="forbidden_delete")

        if not await self.notes.delete_unsigned(note.id, owner_id):
            current = await self.notes.get_owned(note.id, owner_id)
            if current is not None and current.is_signed:
                raise ForbiddenError("Cannot delete a signed delivery note.", error="forbidden_delete")
            raise NotFoundError(NOT_FOUND_MESSAGE)
        logger.info("Deleted delivery note %s", note.id)

    async def download_pdf(self, requester: UserInDB, note_id: Any) -> PdfDownload:
        """
        Resolve the signed PDF of a note for its owner or a company guest.

        Unsigned notes have no PDF and report 404. A signed note without a
        stored CID is rendered again from current data.
        """
        note = await self.notes.get_by_id(note_id)
        if note is None:
            raise NotFoundError("Delivery note not found.")

        owner = await self.users.get_user_by_id(note.owner_id)
        AccessGate.ensure_can_download(requester, note, owner)

        if not note.is_signed:
            raise NotFoundError(PDF_NOT_AVAILABLE_MESSAGE, error="pdf_not_available")

        filename = f"DeliveryNote_{note.note_number}.pdf"
        if note.pdf_url:
            url = self.pinning.gateway_url_for(note.pdf_url)
            logger.info("Redirecting PDF download of note %s to %s", note.id, url)
            return PdfDownload(filename=filename, redirect_url=url)

        logger.warning("Delivery note %s is signed but has no PDF CID, regenerating", note.id)
        try:
            populated = await self._populate(note, {("user", note.owner_id): owner})
            content = await self._render(populated)
        except DependencyFailure as e:
            raise DependencyFailure(
                "Failed to retrieve or generate PDF.", error="pdf_fallback", extra={"detail": e.message}
            ) from e
        return PdfDownload(filename=filename, content=content)
