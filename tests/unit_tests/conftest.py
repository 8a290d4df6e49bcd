import pytest

from chatfiles.attachment.service import AttachmentService
from chatfiles.db.json_db import Json
from chatfiles.events import EventService
from chatfiles.models import User
from chatfiles.store.memory_store import MemoryStore
from tests.unit_tests.images import CountingIds

UPLOADER_ID = 42


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def db() -> Json:
    db = Json({})
    db.add_user(User(id=UPLOADER_ID, username="uploader", name="Up Loader"))
    return db


@pytest.fixture
def published() -> list:
    return []


@pytest.fixture
def events(db: Json, published: list) -> EventService:
    return EventService(db, [published.append])


@pytest.fixture
def service(store: MemoryStore, db: Json, events: EventService) -> AttachmentService:
    return AttachmentService(
        store=store,
        db=db,
        events=events,
        id_generator=CountingIds(),
        identity=UPLOADER_ID,
    )
