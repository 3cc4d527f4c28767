"""
Unit tests for the catalog service.
"""

import pytest
from bson import ObjectId

from conftest import BOOK_ID, OTHER_BOOK_ID
from rental.catalog import CatalogService, parse_rent, parse_rent_range
from rental.database import BOOKS
from rental.errors import InvalidRangeError, NotFoundError, StoreError, ValidationError
from rental.models import ById, ByName


def book_document(book_id=BOOK_ID, name="Dune", category="Science Fiction", rent=5):
    return {"_id": ObjectId(book_id), "name": name, "category": category, "rentPerDay": rent}


class TestParseRent:
    """Test cases for rent bound parsing."""

    def test_numeric_strings(self):
        assert parse_rent("2.5", "minRent") == 2.5
        assert parse_rent(0, "minRent") == 0

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_rent(value, "minRent")
        assert exc_info.value.message == "minRent is required"

    @pytest.mark.parametrize("value", ["cheap", "nan", True, "inf", "-Infinity", "1e400", 10 ** 400])
    def test_not_a_number(self, value):
        with pytest.raises(ValidationError):
            parse_rent(value, "maxRent")

    def test_reversed_range(self):
        with pytest.raises(InvalidRangeError):
            parse_rent_range("10", "1")


class TestCatalogService:
    """Test cases for CatalogService."""

    @pytest.fixture
    def catalog(self, mock_store):
        return CatalogService(mock_store)

    @pytest.mark.asyncio
    async def test_list_books(self, catalog, mock_store):
        """Test listing all books."""
        mock_store.find.return_value = [book_document(), book_document(OTHER_BOOK_ID, "Emma", "Classic", 2)]

        books = await catalog.list_books()

        mock_store.find.assert_awaited_once_with(BOOKS)
        assert [book.name for book in books] == ["Dune", "Emma"]

    @pytest.mark.asyncio
    async def test_add_book_largest_stored_integer(self, catalog, mock_store):
        mock_store.insert_one.return_value = BOOK_ID
        await catalog.add_book("Dune", "Science Fiction", 2 ** 63 - 1)
        mock_store.insert_one.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_add_book(self, catalog, mock_store):
        """Test adding a valid book."""
        mock_store.insert_one.return_value = BOOK_ID

        book = await catalog.add_book("Dune", "Science Fiction", 5)

        mock_store.insert_one.assert_awaited_once_with(
            BOOKS, {"name": "Dune", "category": "Science Fiction", "rentPerDay": 5}
        )
        assert book.id == BOOK_ID
        assert book.rent_per_day == 5

    @pytest.mark.asyncio
    async def test_add_free_book(self, catalog, mock_store):
        """Test that a zero rent is accepted."""
        mock_store.insert_one.return_value = BOOK_ID
        book = await catalog.add_book("Gutenberg", "Classic", 0)
        assert book.rent_per_day == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,category,rent", [
        (None, "Fiction", 5),
        ("Dune", "", 5),
        ("   ", "Fiction", 5),
        ("Dune", "Fiction", -1),
        ("Dune", "Fiction", "5"),
        ("Dune", "Fiction", True),
        ("Dune", "Fiction", None),
        ("Dune", "Fiction", float("nan")),
        ("Dune", "Fiction", float("inf")),
        ("Dune", "Fiction", 2 ** 63),
        ("Dune", "Fiction", 10 ** 400),
    ])
    async def test_add_book_invalid(self, catalog, mock_store, name, category, rent):
        """Test that invalid book data is rejected before touching the store."""
        with pytest.raises(ValidationError):
            await catalog.add_book(name, category, rent)
        mock_store.insert_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_by_name_is_literal_and_case_insensitive(self, catalog, mock_store):
        """Test that the search term is escaped and matched ignoring case."""
        mock_store.find.return_value = [book_document()]

        books = await catalog.search_by_name("dune (1965)")

        filter_query = mock_store.find.call_args[0][1]
        assert filter_query == {"name": {"$regex": r"dune\ \(1965\)", "$options": "i"}}
        assert len(books) == 1

    @pytest.mark.asyncio
    async def test_search_by_name_no_matches(self, catalog, mock_store):
        """Test that an empty result is reported as not found."""
        mock_store.find.return_value = []
        with pytest.raises(NotFoundError):
            await catalog.search_by_name("zzz")

    @pytest.mark.asyncio
    async def test_search_by_name_requires_term(self, catalog):
        with pytest.raises(ValidationError):
            await catalog.search_by_name(None)

    @pytest.mark.asyncio
    async def test_search_by_rent_range_free_books(self, catalog, mock_store):
        """Test that the range [0, 0] asks for free books only."""
        mock_store.find.return_value = [book_document(rent=0)]

        books = await catalog.search_by_rent_range("0", "0")

        mock_store.find.assert_awaited_once_with(BOOKS, {"rentPerDay": {"$gte": 0.0, "$lte": 0.0}})
        assert all(book.rent_per_day == 0 for book in books)

    @pytest.mark.asyncio
    async def test_search_by_rent_range_missing_bound(self, catalog, mock_store):
        with pytest.raises(ValidationError):
            await catalog.search_by_rent_range("1", None)
        mock_store.find.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_by_rent_range_empty(self, catalog, mock_store):
        mock_store.find.return_value = []
        with pytest.raises(NotFoundError):
            await catalog.search_by_rent_range("100", "200")

    @pytest.mark.asyncio
    async def test_search_by_category_name_range(self, catalog, mock_store):
        """Test the combined search filter."""
        mock_store.find.return_value = [book_document()]

        await catalog.search_by_category_name_range("Science Fiction", "dun", "1", "10")

        mock_store.find.assert_awaited_once_with(BOOKS, {
            "category": "Science Fiction",
            "name": {"$regex": "dun", "$options": "i"},
            "rentPerDay": {"$gte": 1.0, "$lte": 10.0},
        })

    @pytest.mark.asyncio
    async def test_search_by_category_name_range_requires_all(self, catalog, mock_store):
        with pytest.raises(ValidationError) as exc_info:
            await catalog.search_by_category_name_range("Science Fiction", "dun", "1", None)
        assert "required" in exc_info.value.message
        mock_store.find.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_find_book_by_id(self, catalog, mock_store):
        mock_store.find_by_id.return_value = book_document()

        book = await catalog.find_book(ById(id=BOOK_ID))

        mock_store.find_by_id.assert_awaited_once_with(BOOKS, ObjectId(BOOK_ID))
        assert book.name == "Dune"

    @pytest.mark.asyncio
    async def test_find_book_by_exact_name(self, catalog, mock_store):
        mock_store.find_one.return_value = book_document()

        await catalog.find_book(ByName(name="Dune"))

        mock_store.find_one.assert_awaited_once_with(BOOKS, {"name": "Dune"})

    @pytest.mark.asyncio
    async def test_find_book_by_name_ignoring_case(self, catalog, mock_store):
        mock_store.find_one.return_value = book_document()

        await catalog.find_book(ByName(name="dune", ignore_case=True))

        mock_store.find_one.assert_awaited_once_with(
            BOOKS, {"name": {"$regex": "^dune$", "$options": "i"}}
        )

    @pytest.mark.asyncio
    async def test_find_book_invalid_id(self, catalog, mock_store):
        with pytest.raises(ValidationError):
            await catalog.find_book(ById(id="42"))
        mock_store.find_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_book_missing(self, catalog, mock_store):
        mock_store.find_one.return_value = None
        with pytest.raises(NotFoundError) as exc_info:
            await catalog.get_book(ByName(name="Missing"))
        assert exc_info.value.message == "Book not found"

    @pytest.mark.asyncio
    async def test_books_by_ids_skips_malformed_ids(self, catalog, mock_store):
        """Test that only well-formed ids are queried and found ones returned."""
        mock_store.find.return_value = [book_document()]

        books = await catalog.books_by_ids([BOOK_ID, OTHER_BOOK_ID, "legacy-id"])

        filter_query = mock_store.find.call_args[0][1]
        assert set(filter_query["_id"]["$in"]) == {ObjectId(BOOK_ID), ObjectId(OTHER_BOOK_ID)}
        assert list(books) == [BOOK_ID]

    @pytest.mark.asyncio
    async def test_list_books_skips_malformed_records(self, catalog, mock_store):
        """Test that one bad stored row does not break the listing."""
        mock_store.find.return_value = [
            book_document(),
            book_document(OTHER_BOOK_ID, "Emma", "Classic", -1),
            {"_id": ObjectId(), "name": "Ulysses", "category": "Classic", "rentPerDay": None},
        ]

        books = await catalog.list_books()

        assert [book.name for book in books] == ["Dune"]

    @pytest.mark.asyncio
    async def test_find_book_malformed_record(self, catalog, mock_store):
        mock_store.find_by_id.return_value = book_document(rent="free")

        with pytest.raises(StoreError) as exc_info:
            await catalog.find_book(ById(id=BOOK_ID))

        assert exc_info.value.detail == BOOK_ID

    @pytest.mark.asyncio
    async def test_books_by_ids_empty(self, catalog, mock_store):
        assert await catalog.books_by_ids([]) == {}
        mock_store.find.assert_not_awaited()
