import os
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

os.environ.setdefault("SECRET_KEY", "test-secret")

from dataBase import get_db  # noqa: E402
from main import app  # noqa: E402
from models.book_models import BookRef  # noqa: E402
from utils import create_access_token  # noqa: E402


def _matches(document, query):
    for key, expected in query.items():
        if key == "$or":
            if not any(_matches(document, clause) for clause in expected):
                return False
        elif document.get(key) != expected:
            return False
    return True


class FakeCursor:
    def __init__(self, documents):
        self._documents = documents

    def sort(self, key, direction=1):
        self._documents.sort(key=lambda d: d.get(key), reverse=direction == -1)
        return self

    def skip(self, count):
        self._documents = self._documents[count:]
        return self

    def limit(self, count):
        self._documents = self._documents[:count]
        return self

    def __aiter__(self):
        self._iter = iter(self._documents)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    """Just enough of motor's AsyncIOMotorCollection for the routes."""

    def __init__(self):
        self.documents = []

    async def insert_one(self, document):
        document = dict(document)
        document.setdefault("_id", ObjectId())
        self.documents.append(document)
        return SimpleNamespace(inserted_id=document["_id"])

    async def find_one(self, query):
        for document in self.documents:
            if _matches(document, query):
                return dict(document)
        return None

    def find(self, query):
        return FakeCursor([dict(d) for d in self.documents if _matches(d, query)])

    async def update_one(self, query, update):
        for document in self.documents:
            if _matches(document, query):
                document.update(update.get("$set", {}))
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def update_many(self, query, update):
        matched = [d for d in self.documents if _matches(d, query)]
        for document in matched:
            document.update(update.get("$set", {}))
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched))

    async def delete_one(self, query):
        for index, document in enumerate(self.documents):
            if _matches(document, query):
                del self.documents[index]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def count_documents(self, query):
        return sum(1 for d in self.documents if _matches(d, query))


class FakeDatabase:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self._collections.setdefault(name, FakeCollection())


class FakeCatalog:
    def __init__(self, books=None):
        self.books = {book.id: book for book in (books or [])}
        self.lookups = []

    async def get_book(self, book_id):
        self.lookups.append(book_id)
        return self.books.get(book_id)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(now):
    return FixedClock(now)


@pytest.fixture
def catalog():
    return FakeCatalog([BookRef(id="10", ownerId="U1", title="Calculus")])


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest_asyncio.fixture
async def book_id(fake_db):
    result = await fake_db.books.insert_one({"bookName": "Organic Chemistry", "user_id": "owner"})
    return str(result.inserted_id)


@pytest_asyncio.fixture
async def client(fake_db):
    app.dependency_overrides[get_db] = lambda: fake_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        return {"Authorization": f"Bearer {create_access_token({'user_id': user_id})}"}
    return _headers
