import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from bson import ObjectId
from fastapi.testclient import TestClient
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.api.deps import get_delivery_note_service
from app.core.auth import create_access_token, get_current_user
from app.core.exceptions import ConflictError
from app.db.mongo import create_indexes
from app.main import app
from app.models.base import to_object_id
from app.models.client import Client
from app.models.delivery_note import DeliveryNote
from app.models.project import Project
from app.models.user import CompanyAddress, CompanyInfo, UserInDB
from app.services.delivery_note_service import DeliveryNoteService
from app.services.pdf_renderer import DeliveryNotePdfRenderer
from app.services.pinning_service import PinningClient

# Repository tests need a real MongoDB and are skipped without one
TEST_MONGODB_URI = os.getenv("TEST_MONGODB_URI")
TEST_MONGODB_DB = "albaranes_test"


# ─── In-memory doubles ───

class FakeDeliveryNoteRepository:
    """Same contract as DeliveryNoteRepository, backed by a dict."""

    def __init__(self):
        self.docs: Dict[ObjectId, DeliveryNote] = {}

    def _copy(self, note: Optional[DeliveryNote]) -> Optional[DeliveryNote]:
        return note.model_copy(deep=True) if note else None

    async def insert(self, note: DeliveryNote) -> DeliveryNote:
        if await self.number_exists(note.owner_id, note.note_number):
            raise ConflictError("Delivery note number already exists for this user.")
        self.docs[note.id] = note.model_copy(deep=True)
        return note

    async def get_owned(self, note_id: Any, owner_id: ObjectId) -> Optional[DeliveryNote]:
        note = self.docs.get(to_object_id(note_id))
        if note and note.owner_id == owner_id:
            return self._copy(note)
        return None

    async def get_by_id(self, note_id: Any) -> Optional[DeliveryNote]:
        return self._copy(self.docs.get(to_object_id(note_id)))

    async def list_owned(self, owner_id, project_id=None, client_id=None, is_signed=None) -> List[DeliveryNote]:
        notes = [n for n in self.docs.values() if n.owner_id == owner_id]
        if project_id is not None:
            notes = [n for n in notes if n.project_id == project_id]
        if client_id is not None:
            notes = [n for n in notes if n.client_id == client_id]
        if is_signed is not None:
            notes = [n for n in notes if n.is_signed == is_signed]
        return [self._copy(n) for n in sorted(notes, key=lambda n: n.date, reverse=True)]

    async def number_exists(self, owner_id, note_number, exclude_id=None) -> bool:
        return any(
            n.owner_id == owner_id and n.note_number == note_number and n.id != exclude_id
            for n in self.docs.values()
        )

    def _unsigned_owned(self, note_id, owner_id) -> Optional[DeliveryNote]:
        note = self.docs.get(note_id)
        if note is None or note.owner_id != owner_id or note.is_signed:
            return None
        return note

    async def update_unsigned(self, note_id, owner_id, updates) -> Optional[DeliveryNote]:
        note = self._unsigned_owned(note_id, owner_id)
        if note is None:
            return None
        if "note_number" in updates and await self.number_exists(owner_id, updates["note_number"], note_id):
            raise ConflictError("Delivery note number already exists for this user.")
        data = {**note.model_dump(by_alias=True), **updates, "updated_at": datetime.now(timezone.utc)}
        self.docs[note_id] = DeliveryNote(**data)
        return self._copy(self.docs[note_id])

    async def finalize_signature(self, note_id, owner_id, signed_at, signature_url, pdf_url):
        note = self._unsigned_owned(note_id, owner_id)
        if note is None:
            return None
        self.docs[note_id] = note.model_copy(update={
            "is_signed": True,
            "signed_at": signed_at,
            "signature_url": signature_url,
            "pdf_url": pdf_url,
            "updated_at": datetime.now(timezone.utc),
        })
        return self._copy(self.docs[note_id])

    async def delete_unsigned(self, note_id, owner_id) -> bool:
        if self._unsigned_owned(note_id, owner_id) is None:
            return False
        del self.docs[note_id]
        return True


class FakeProjectRepository:
    def __init__(self, projects: List[Project]):
        self.projects = {p.id: p for p in projects}

    async def find_owned_active_project(self, project_id, owner_id) -> Optional[Project]:
        project = self.projects.get(to_object_id(project_id))
        if project and project.created_by == owner_id and not project.archived:
            return project
        return None

    async def get_project(self, project_id) -> Optional[Project]:
        return self.projects.get(to_object_id(project_id))


class FakeClientRepository:
    def __init__(self, clients: List[Client]):
        self.clients = {c.id: c for c in clients}

    async def get_client(self, client_id) -> Optional[Client]:
        return self.clients.get(to_object_id(client_id))


class FakeUserRepository:
    def __init__(self, users: List[UserInDB]):
        self.users = {u.id: u for u in users}

    async def get_user_by_id(self, user_id) -> Optional[UserInDB]:
        return self.users.get(to_object_id(user_id))


class RecordingPinningClient(PinningClient):
    """Pinning client that records uploads instead of calling Pinata."""

    def __init__(self):
        super().__init__(
            api_key="test-key",
            secret_api_key="test-secret",
            gateway_url="https://gateway.example.com",
        )
        self.uploads: List[tuple] = []
        self.unpinned: List[str] = []
        self.upload_error: Optional[Exception] = None

    async def upload(self, data: bytes, name: str) -> str:
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append((name, data))
        return f"QmSignedPdf{len(self.uploads)}"

    async def unpin(self, cid: str) -> None:
        self.unpinned.append(cid)


# ─── Domain fixtures ───

@pytest.fixture
def company_id():
    return ObjectId()


@pytest.fixture
def owner_user(company_id):
    return UserInDB(
        _id=ObjectId(),
        email="owner@example.com",
        first_name="Ana",
        last_name="García",
        nif="12345678Z",
        company_id=company_id,
        company=CompanyInfo(
            name="Construcciones Ana SL",
            cif="B12345678",
            address=CompanyAddress(street="Calle Mayor 1", city="Madrid", postal_code="28001", country="Spain"),
        ),
    )


@pytest.fixture
def guest_user(company_id):
    return UserInDB(_id=ObjectId(), email="guest@example.com", first_name="Luis", company_id=company_id)


@pytest.fixture
def stranger_user():
    return UserInDB(_id=ObjectId(), email="stranger@example.com", company_id=ObjectId())


@pytest.fixture
def client_c1(owner_user):
    return Client(
        name="Cliente Uno",
        email="c1@example.com",
        cif="A87654321",
        address="Avenida del Puerto 5, Valencia",
        created_by=owner_user.id,
    )


@pytest.fixture
def client_c2(owner_user):
    return Client(name="Cliente Dos", created_by=owner_user.id)


@pytest.fixture
def project_p1(owner_user, client_c1):
    return Project(name="Reforma oficina", description="Second floor", client_id=client_c1.id, created_by=owner_user.id)


@pytest.fixture
def project_p2(owner_user, client_c2):
    return Project(name="Nave industrial", client_id=client_c2.id, created_by=owner_user.id)


@pytest.fixture
def archived_project(owner_user, client_c1):
    return Project(name="Old job", client_id=client_c1.id, created_by=owner_user.id, archived=True)


@pytest.fixture
def note_repo():
    return FakeDeliveryNoteRepository()


@pytest.fixture
def pinning():
    return RecordingPinningClient()


@pytest.fixture
def user_repo(owner_user, guest_user, stranger_user):
    return FakeUserRepository([owner_user, guest_user, stranger_user])


@pytest.fixture
def service(note_repo, pinning, user_repo, client_c1, client_c2, project_p1, project_p2, archived_project):
    return DeliveryNoteService(
        notes=note_repo,
        projects=FakeProjectRepository([project_p1, project_p2, archived_project]),
        clients=FakeClientRepository([client_c1, client_c2]),
        users=user_repo,
        renderer=DeliveryNotePdfRenderer(),
        pinning=pinning,
    )


@pytest.fixture
def hours_items():
    """8 hours at 50 per hour: total 400."""
    return [{"description": "Installation", "quantity": 8, "unit_price": 50, "person": "Pedro"}]


# ─── HTTP fixtures ───

class CurrentUser:
    """Who the overridden auth dependency reports as logged in."""

    def __init__(self, user: UserInDB):
        self.user = user


@pytest.fixture
def current_user(owner_user):
    return CurrentUser(owner_user)


@pytest.fixture
def api_client(service, current_user):
    app.dependency_overrides[get_current_user] = lambda: current_user.user
    app.dependency_overrides[get_delivery_note_service] = lambda: service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ─── MongoDB fixtures ───

@pytest_asyncio.fixture
async def test_db() -> AsyncIOMotorDatabase:
    """Fixture for test MongoDB database (for async repository tests)."""
    if not TEST_MONGODB_URI:
        pytest.skip("TEST_MONGODB_URI not set")

    client = AsyncIOMotorClient(TEST_MONGODB_URI)
    db = client[TEST_MONGODB_DB]

    # Drop database before test to ensure clean state
    await client.drop_database(TEST_MONGODB_DB)
    await create_indexes(db)

    yield db

    await client.drop_database(TEST_MONGODB_DB)
    client.close()


@pytest.fixture
def valid_token(owner_user):
    return create_access_token(str(owner_user.id))
