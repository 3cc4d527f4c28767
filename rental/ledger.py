"""
Rental ledger: owns Transaction records.

A transaction is created ``issued`` and moves to ``returned`` exactly once,
at which point its return date and total rent are written in the same
update. Books and users are only looked up, never modified.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

import structlog
from bson import ObjectId

from .catalog import CatalogService
from .database import TRANSACTIONS, MongoDBManager
from .errors import ConflictError, InvalidRangeError, NotFoundError, ValidationError
from .models import (
    NOT_ISSUED, UNKNOWN_BOOK, UNKNOWN_USER,
    BookHistory, BookRent, ById, ByHolder, ByName, ByTransactionId, CurrentStatus,
    EntityRef, HistoryEntry, RentReceipt, Transaction, TransactionRef,
    TransactionStatus, TransactionView, User,
    is_date_only, parse_timestamp, ref_from_identifier, to_object_id,
)
from .registry import UserRegistry

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def days_rented(issue_date: datetime, return_date: datetime, minimum_days: int = 1) -> int:
    """
    Number of days charged for a rental.

    Any started day counts as a whole day, and the result is never below
    ``minimum_days``.

    Raises:
        InvalidRangeError: if the return date lies before the issue date
    """
    elapsed = (return_date - issue_date).total_seconds()
    if elapsed < 0:
        raise InvalidRangeError("returnDate must not be before issueDate")
    return max(math.ceil(elapsed / SECONDS_PER_DAY), minimum_days)


def calculate_rent(rent_per_day: float, days: int) -> float:
    """Rent owed for a number of days, rounded to cents."""
    return round(rent_per_day * days, 2)


class RentalLedger:
    """
    Issue and return books and answer queries over the transaction history.

    Args:
        store: Document store holding the transactions
        catalog: Used to resolve books
        registry: Used to resolve users
        minimum_days: Lower bound on charged days
        single_holder: Refuse to issue a book that already has an open transaction
    """

    def __init__(
        self,
        store: MongoDBManager,
        catalog: CatalogService,
        registry: UserRegistry,
        minimum_days: int = 1,
        single_holder: bool = False
    ):
        self.store = store
        self.catalog = catalog
        self.registry = registry
        self.minimum_days = minimum_days
        self.single_holder = single_holder

    async def issue_book(self, book_ref: EntityRef, user_ref: EntityRef, issue_date: Any) -> str:
        """
        Open a rental transaction.

        Returns:
            str: The new transaction id

        Raises:
            ValidationError: if issue_date is missing or malformed
            NotFoundError: if the book or user does not exist
            ConflictError: if single-holder enforcement is on and the book is out
        """
        issued_at = parse_timestamp(issue_date, "issueDate")
        book = await self.catalog.get_book(book_ref)
        user = await self.registry.get_user(user_ref)

        book_id = ObjectId(book.id)
        if self.single_holder:
            holder = await self.store.find_one(
                TRANSACTIONS, {"bookId": book_id, "status": TransactionStatus.ISSUED.value}
            )
            if holder is not None:
                raise ConflictError("Book is already issued", detail=str(holder["_id"]))

        transaction_id = await self.store.insert_one(TRANSACTIONS, {
            "bookId": book_id,
            "userId": ObjectId(user.id),
            "issueDate": issued_at,
            "status": TransactionStatus.ISSUED.value,
        })
        logger.info(
            "Book issued",
            transaction_id=transaction_id,
            book_id=book.id,
            user_id=user.id,
            issue_date=issued_at.isoformat()
        )
        return transaction_id

    async def _find_open_transaction(self, ref: TransactionRef) -> Optional[Dict[str, Any]]:
        issued = TransactionStatus.ISSUED.value
        if isinstance(ref, ByTransactionId):
            return await self.store.find_one(
                TRANSACTIONS, {"_id": to_object_id(ref.id, "transactionId"), "status": issued}
            )
        if isinstance(ref, ByHolder):
            book = await self.catalog.get_book(ref.book)
            user = await self.registry.get_user(ref.user)
            return await self.store.find_one(
                TRANSACTIONS,
                {"bookId": ObjectId(book.id), "userId": ObjectId(user.id), "status": issued},
                sort=[("issueDate", -1)]
            )
        raise ValidationError("transactionId or bookId/userId is required")

    async def return_book(self, ref: TransactionRef, return_date: Any) -> RentReceipt:
        """
        Close an open transaction and charge rent.

        Raises:
            ValidationError: if return_date is missing or malformed
            InvalidRangeError: if return_date lies before the issue date
            NotFoundError: if there is no open transaction or its book is gone
        """
        returned_at = parse_timestamp(return_date, "returnDate")

        document = await self._find_open_transaction(ref)
        if document is None:
            raise NotFoundError("No active transaction found for this book and user")
        transaction = Transaction.from_document(document)

        book = await self.catalog.find_book(ById(id=transaction.book_id))
        if book is None:
            raise NotFoundError("Book not found")

        days = days_rented(transaction.issue_date, returned_at, self.minimum_days)
        total_rent = calculate_rent(book.rent_per_day, days)

        # Guarded on status so a concurrent return cannot close it twice
        updated = await self.store.update_one(
            TRANSACTIONS,
            {"_id": document["_id"], "status": TransactionStatus.ISSUED.value},
            {
                "returnDate": returned_at,
                "totalRent": total_rent,
                "status": TransactionStatus.RETURNED.value,
            }
        )
        if not updated:
            raise NotFoundError("No active transaction found for this book and user")

        logger.info(
            "Book returned",
            transaction_id=transaction.id,
            book_id=book.id,
            days_rented=days,
            total_rent=total_rent
        )
        return RentReceipt(transaction_id=transaction.id, total_rent=total_rent, days_rented=days)

    async def _enrich(
        self,
        transactions: List[Transaction],
        users: Optional[Dict[str, User]] = None,
        skip_unresolved: bool = False
    ) -> List[TransactionView]:
        """Attach book and user names, using placeholders for missing references."""
        books = await self.catalog.books_by_ids({t.book_id for t in transactions})
        if users is None:
            users = await self.registry.users_by_ids({t.user_id for t in transactions})

        views = []
        for transaction in transactions:
            book = books.get(transaction.book_id)
            user = users.get(transaction.user_id)
            if skip_unresolved and (book is None or user is None):
                logger.debug("Skipping transaction with unresolved references", transaction_id=transaction.id)
                continue
            views.append(TransactionView(
                **transaction.dict(),
                book_name=book.name if book else UNKNOWN_BOOK,
                username=user.name if user else UNKNOWN_USER,
            ))
        return views

    async def list_transactions(self) -> List[TransactionView]:
        """Every transaction with book and user names."""
        documents = await self.store.find(TRANSACTIONS)
        if not documents:
            raise NotFoundError("No transactions found")
        return await self._enrich([Transaction.from_document(doc) for doc in documents])

    async def book_history(self, book_name: str) -> BookHistory:
        """
        Everyone who ever rented a book, plus who holds it now.

        The ledger allows several open transactions per book; the most
        recently issued one is reported as the current holder.
        """
        book = await self.catalog.get_book(ByName(name=book_name))
        documents = await self.store.find(
            TRANSACTIONS, {"bookId": ObjectId(book.id)}, sort=[("issueDate", 1)]
        )
        transactions = [Transaction.from_document(doc) for doc in documents]
        users = await self.registry.users_by_ids({t.user_id for t in transactions})

        def username(user_id: str) -> str:
            user = users.get(user_id)
            return user.name if user else UNKNOWN_USER

        entries = [
            HistoryEntry(
                user_id=t.user_id,
                username=username(t.user_id),
                issue_date=t.issue_date,
                return_date=t.return_date,
                status=t.status,
            )
            for t in transactions
        ]

        open_transactions = [t for t in transactions if t.status == TransactionStatus.ISSUED]
        if len(open_transactions) > 1:
            logger.warning("Book has several open transactions", book_id=book.id, count=len(open_transactions))

        current = CurrentStatus(status=NOT_ISSUED)
        if open_transactions:
            holder = max(open_transactions, key=lambda t: t.issue_date)
            current = CurrentStatus(
                status=TransactionStatus.ISSUED.value,
                user_id=holder.user_id,
                username=username(holder.user_id),
                issue_date=holder.issue_date,
            )

        return BookHistory(book_id=book.id, book_name=book.name, past_issuers=entries, current_status=current)

    async def total_rent_for_book(self, book_name: str) -> BookRent:
        """Rent collected over all returned transactions of a book."""
        book = await self.catalog.get_book(ByName(name=book_name, ignore_case=True))
        total = await self.store.sum_field(
            TRANSACTIONS,
            "totalRent",
            {"bookId": ObjectId(book.id), "status": TransactionStatus.RETURNED.value}
        )
        return BookRent(book_id=book.id, book_name=book.name, total_rent=total)

    async def transactions_for_user(self, identifier: Union[str, EntityRef]) -> List[TransactionView]:
        """A user's transactions, newest first, with book names."""
        ref = ref_from_identifier(identifier) if isinstance(identifier, str) else identifier
        user = await self.registry.get_user(ref)

        documents = await self.store.find(
            TRANSACTIONS, {"userId": ObjectId(user.id)}, sort=[("issueDate", -1)]
        )
        if not documents:
            raise NotFoundError("No transactions found for this user")
        transactions = [Transaction.from_document(doc) for doc in documents]
        return await self._enrich(transactions, users={user.id: user})

    async def transactions_issued_in_range(self, start_date: Any, end_date: Any) -> List[TransactionView]:
        """
        Transactions issued within [start_date, end_date], both ends inclusive.

        A date-only end_date covers that whole day.

        Rows whose book or user no longer resolves are left out.
        """
        if start_date in (None, "") or end_date in (None, ""):
            raise ValidationError("startDate and endDate are required")
        start = parse_timestamp(start_date, "startDate")
        end = parse_timestamp(end_date, "endDate")
        if start > end:
            raise InvalidRangeError("startDate must not be after endDate")

        issued = {"$gte": start, "$lte": end}
        if is_date_only(end_date):
            issued = {"$gte": start, "$lt": end + timedelta(days=1)}

        documents = await self.store.find(TRANSACTIONS, {"issueDate": issued}, sort=[("issueDate", 1)])
        transactions = [Transaction.from_document(doc) for doc in documents]
        return await self._enrich(transactions, skip_unresolved=True)
