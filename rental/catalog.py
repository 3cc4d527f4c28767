"""
Catalog service: owns Book records.
"""

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from bson import ObjectId
from pydantic import ValidationError as SchemaError

from .database import BOOKS, MongoDBManager, contains_text, exact_text
from .errors import InvalidRangeError, NotFoundError, StoreError, ValidationError
from .models import Book, ById, ByName, EntityRef, to_object_id

logger = structlog.get_logger(__name__)

# Largest integer a BSON int64 can hold
MAX_STORED_INT = 2 ** 63 - 1


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def _as_detail(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _is_storable_rent(value: Any) -> bool:
    """True for a finite, non-negative int or float that fits a BSON number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, int):
        return 0 <= value <= MAX_STORED_INT
    return math.isfinite(value) and value >= 0


def parse_rent(value: Any, field_name: str) -> float:
    """Parse a rent bound given as a number or a numeric query string."""
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field_name} must be a number", detail=_as_detail(value)) from None
    if not math.isfinite(parsed):
        raise ValidationError(f"{field_name} must be a number", detail=_as_detail(value))
    return parsed


def _to_books(documents: Iterable[Dict[str, Any]]) -> List[Book]:
    """Convert stored documents, leaving out rows that no longer fit the Book schema."""
    books = []
    for document in documents:
        try:
            books.append(Book.from_document(document))
        except SchemaError as e:
            logger.warning(
                "Skipping malformed book record",
                book_id=str(document.get("_id")),
                error_count=e.error_count(),
            )
    return books


def parse_rent_range(min_rent: Any, max_rent: Any) -> Tuple[float, float]:
    """Parse an inclusive rent range, rejecting reversed bounds."""
    low = parse_rent(min_rent, "minRent")
    high = parse_rent(max_rent, "maxRent")
    if low > high:
        raise InvalidRangeError("minRent must not be greater than maxRent")
    return low, high


class CatalogService:
    """Create, list, search and resolve books."""

    def __init__(self, store: MongoDBManager):
        self.store = store

    async def list_books(self) -> List[Book]:
        """Return every book in the store's natural order."""
        documents = await self.store.find(BOOKS)
        return _to_books(documents)

    async def add_book(self, name: Any, category: Any, rent_per_day: Any) -> Book:
        """
        Add a book to the catalog.

        Args:
            name: Book title
            category: Book category
            rent_per_day: Non-negative number; strings and booleans are rejected

        Returns:
            The created Book with its assigned id

        Raises:
            ValidationError: if any field is missing or malformed
        """
        name = _require_text(name, "name")
        category = _require_text(category, "category")
        if not _is_storable_rent(rent_per_day):
            raise ValidationError("rentPerDay must be a non-negative number")

        document = {"name": name, "category": category, "rentPerDay": rent_per_day}
        book_id = await self.store.insert_one(BOOKS, document)
        logger.info("Book added", book_id=book_id, name=name, category=category)
        return Book(id=book_id, name=name, category=category, rent_per_day=rent_per_day)

    async def search_by_name(self, term: Any) -> List[Book]:
        """Case-insensitive substring search on the book name."""
        if not isinstance(term, str) or not term:
            raise ValidationError("Book name or term is required")

        documents = await self.store.find(BOOKS, {"name": contains_text(term)})
        if not documents:
            raise NotFoundError("No books found matching the search term")
        return _to_books(documents)

    async def search_by_rent_range(self, min_rent: Any, max_rent: Any) -> List[Book]:
        """Books whose rentPerDay lies in [min_rent, max_rent]."""
        low, high = parse_rent_range(min_rent, max_rent)

        documents = await self.store.find(BOOKS, {"rentPerDay": {"$gte": low, "$lte": high}})
        if not documents:
            raise NotFoundError("No books found in the specified rent range")
        return _to_books(documents)

    async def search_by_category_name_range(
        self,
        category: Any,
        term: Any,
        min_rent: Any,
        max_rent: Any
    ) -> List[Book]:
        """Books in a category whose name contains term and whose rent is in range."""
        if not category or not term or min_rent in (None, "") or max_rent in (None, ""):
            raise ValidationError("Category, name/term, minRent, and maxRent are required")
        category = _require_text(category, "category")
        term = _require_text(term, "name")
        low, high = parse_rent_range(min_rent, max_rent)

        documents = await self.store.find(BOOKS, {
            "category": category,
            "name": contains_text(term),
            "rentPerDay": {"$gte": low, "$lte": high},
        })
        if not documents:
            raise NotFoundError("No books found matching the criteria")
        return _to_books(documents)

    async def find_book(self, ref: EntityRef) -> Optional[Book]:
        """Resolve a book by id or name, None if it does not exist."""
        if isinstance(ref, ById):
            document = await self.store.find_by_id(BOOKS, to_object_id(ref.id, "bookId"))
        elif isinstance(ref, ByName):
            document = await self.store.find_one(
                BOOKS, {"name": exact_text(ref.name, ref.ignore_case)}
            )
        else:
            raise ValidationError("bookId or bookName is required")
        if not document:
            return None
        try:
            return Book.from_document(document)
        except SchemaError as e:
            raise StoreError("Stored book record is malformed", detail=str(document.get("_id"))) from e

    async def get_book(self, ref: EntityRef) -> Book:
        """Resolve a book or raise NotFoundError."""
        book = await self.find_book(ref)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    async def books_by_ids(self, book_ids: Iterable[str]) -> Dict[str, Book]:
        """Load the books among the given ids; ids that do not resolve are left out."""
        object_ids = {ObjectId(book_id) for book_id in book_ids if ObjectId.is_valid(book_id)}
        if not object_ids:
            return {}
        documents = await self.store.find(BOOKS, {"_id": {"$in": list(object_ids)}})
        return {book.id: book for book in _to_books(documents)}
