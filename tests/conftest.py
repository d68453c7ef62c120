"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from api.database import APIDatabaseService
from api.models import UserResponse


def make_cursor(docs):
    """Create a mock Motor cursor whose chained calls return itself."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(docs))
    return cursor


def make_collection():
    """Create a mock Motor collection."""
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.count_documents = AsyncMock(return_value=0)
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.find = MagicMock(return_value=make_cursor([]))
    return collection


@pytest.fixture
def collections():
    """Mock users, books and reviews collections."""
    return {
        "users": make_collection(),
        "books": make_collection(),
        "reviews": make_collection(),
    }


@pytest.fixture
def mock_database(collections):
    """Mock Motor database handing out the mock collections."""
    database = MagicMock()
    database.get_collection.side_effect = lambda name: collections[name]
    database.command = AsyncMock(return_value={"ok": 1})
    return database


@pytest.fixture
def db_service(mock_database):
    """APIDatabaseService backed by mock collections."""
    return APIDatabaseService(mock_database)


@pytest.fixture
def actor():
    """The authenticated user making requests."""
    return UserResponse(id=str(ObjectId()), name="Alice", email="alice@example.com")


@pytest.fixture
def other_user():
    """A second user who owns nothing the actor owns."""
    return UserResponse(id=str(ObjectId()), name="Bob", email="bob@example.com")


@pytest.fixture
def book_doc(actor):
    """Stored book added by the actor."""
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    return {
        "_id": ObjectId(),
        "title": "Dune",
        "author": "Frank Herbert",
        "description": "Desert planet",
        "genre": "Science Fiction",
        "year": 1965,
        "addedBy": ObjectId(actor.id),
        "createdAt": created,
        "updatedAt": created,
    }


@pytest.fixture
def review_doc(actor, book_doc):
    """Stored review of book_doc written by the actor."""
    created = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
    return {
        "_id": ObjectId(),
        "bookId": book_doc["_id"],
        "userId": ObjectId(actor.id),
        "rating": 4,
        "reviewText": "A classic.",
        "createdAt": created,
        "updatedAt": created,
    }


@pytest.fixture(name="make_cursor")
def make_cursor_fixture():
    """Factory for mock Motor cursors."""
    return make_cursor
