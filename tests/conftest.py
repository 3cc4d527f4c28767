"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId

from rental.catalog import CatalogService
from rental.database import MongoDBManager
from rental.models import Book, User
from rental.registry import UserRegistry

BOOK_ID = "65a1f0c2e4b0a1b2c3d4e5f6"
OTHER_BOOK_ID = "65a1f0c2e4b0a1b2c3d4e5f9"
USER_ID = "65a1f0c2e4b0a1b2c3d4e5f7"
OTHER_USER_ID = "65a1f0c2e4b0a1b2c3d4e5fa"
TRANSACTION_ID = "65a1f0c2e4b0a1b2c3d4e5f8"


@pytest.fixture
def mock_store():
    """Create a mock document store for testing."""
    store = AsyncMock(spec=MongoDBManager)
    store.find.return_value = []
    store.find_one.return_value = None
    store.find_by_id.return_value = None
    store.update_one.return_value = True
    store.sum_field.return_value = 0
    return store


@pytest.fixture
def mock_catalog():
    """Create a mock catalog service for testing."""
    catalog = AsyncMock(spec=CatalogService)
    catalog.books_by_ids.return_value = {}
    return catalog


@pytest.fixture
def mock_registry():
    """Create a mock user registry for testing."""
    registry = AsyncMock(spec=UserRegistry)
    registry.users_by_ids.return_value = {}
    return registry


@pytest.fixture
def sample_book():
    """The book rented in most scenarios."""
    return Book(id=BOOK_ID, name="Dune", category="Science Fiction", rent_per_day=5)


@pytest.fixture
def sample_user():
    """The user renting in most scenarios."""
    return User(id=USER_ID, name="Alice")


@pytest.fixture
def open_transaction_document():
    """Raw document of a book issued on 2024-01-01."""
    return {
        "_id": ObjectId(TRANSACTION_ID),
        "bookId": ObjectId(BOOK_ID),
        "userId": ObjectId(USER_ID),
        "issueDate": datetime(2024, 1, 1),
        "status": "issued",
    }


@pytest.fixture
def returned_transaction_document(open_transaction_document):
    """Raw document of the same rental after its return on 2024-01-03."""
    return {
        **open_transaction_document,
        "returnDate": datetime(2024, 1, 3),
        "totalRent": 10,
        "status": "returned",
    }
