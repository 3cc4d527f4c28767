"""
MongoDB database utilities for async operations.
Handles connection, indexing, and generic document operations for the
Books, Users and Transactions collections.
"""

import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from .errors import StoreError

logger = structlog.get_logger(__name__)

BOOKS = "books"
USERS = "users"
TRANSACTIONS = "transactions"

DEFAULT_COLLECTIONS = {
    BOOKS: "Books",
    USERS: "Users",
    TRANSACTIONS: "Transactions",
}

SortSpec = Sequence[Tuple[str, int]]


def contains_text(term: str) -> Dict[str, str]:
    """Case-insensitive substring filter that matches the term literally."""
    return {"$regex": re.escape(term), "$options": "i"}


def exact_text(value: str, ignore_case: bool = False) -> Any:
    """Whole-value match, optionally ignoring case."""
    if not ignore_case:
        return value
    return {"$regex": f"^{re.escape(value)}$", "$options": "i"}


class MongoDBManager:
    """
    Async MongoDB manager used as the document store of every service.

    Collections are addressed by logical key (``books``, ``users``,
    ``transactions``); the manager maps them onto the configured
    collection names. Driver failures are logged and re-raised as
    StoreError.
    """

    def __init__(
        self,
        connection_url: str,
        database_name: str,
        collection_names: Optional[Dict[str, str]] = None
    ):
        """
        Initialize MongoDB manager.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_names: Logical key to collection name mapping
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_names = {**DEFAULT_COLLECTIONS, **(collection_names or {})}
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB", database=self.database_name)

            await self._create_indexes()

        except PyMongoError as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise StoreError("Failed to connect to MongoDB", detail=str(e)) from e

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            self.database = None
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create indexes for the lookups and filters the services run."""
        books = self.collection(BOOKS)
        await books.create_index("name")
        await books.create_index("category")
        await books.create_index("rentPerDay")

        await self.collection(USERS).create_index("name")

        transactions = self.collection(TRANSACTIONS)
        # Open-transaction lookups and per-book history
        await transactions.create_index([("bookId", 1), ("status", 1)])
        await transactions.create_index("userId")
        await transactions.create_index("issueDate")

        logger.info("Successfully created MongoDB indexes")

    def collection(self, key: str) -> AsyncIOMotorCollection:
        """Return the collection registered under a logical key."""
        if self.database is None:
            raise StoreError("Database service not available")
        return self.database[self.collection_names[key]]

    async def insert_one(self, key: str, document: Dict[str, Any]) -> str:
        """
        Insert a document.

        Args:
            key: Logical collection key
            document: Document to insert (not mutated)

        Returns:
            str: The assigned id
        """
        try:
            result = await self.collection(key).insert_one(dict(document))
            logger.debug("Inserted document", collection=key, id=str(result.inserted_id))
            return str(result.inserted_id)
        except PyMongoError as e:
            logger.error("Failed to insert document", collection=key, error=str(e))
            raise StoreError(f"Failed to insert into {key}", detail=str(e)) from e

    async def find(
        self,
        key: str,
        filter_query: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None
    ) -> List[Dict[str, Any]]:
        """
        Find every document matching a filter.

        Args:
            key: Logical collection key
            filter_query: MongoDB filter, all documents when omitted
            sort: Optional list of (field, direction) pairs

        Returns:
            List of raw documents
        """
        try:
            cursor = self.collection(key).find(filter_query or {})
            if sort:
                cursor = cursor.sort(list(sort))
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error("Failed to query documents", collection=key, error=str(e))
            raise StoreError(f"Failed to query {key}", detail=str(e)) from e

    async def find_one(
        self,
        key: str,
        filter_query: Dict[str, Any],
        sort: Optional[SortSpec] = None
    ) -> Optional[Dict[str, Any]]:
        """Find the first document matching a filter, or None."""
        try:
            return await self.collection(key).find_one(
                filter_query, sort=list(sort) if sort else None
            )
        except PyMongoError as e:
            logger.error("Failed to query document", collection=key, error=str(e))
            raise StoreError(f"Failed to query {key}", detail=str(e)) from e

    async def find_by_id(self, key: str, document_id: ObjectId) -> Optional[Dict[str, Any]]:
        """Find a document by its _id."""
        return await self.find_one(key, {"_id": document_id})

    async def update_one(
        self,
        key: str,
        filter_query: Dict[str, Any],
        fields: Dict[str, Any]
    ) -> bool:
        """
        Set fields on the first document matching a filter.

        The filter may carry extra conditions (e.g. an expected status) so
        the update only applies while they still hold.

        Returns:
            bool: True if a document matched, False otherwise
        """
        try:
            result = await self.collection(key).update_one(filter_query, {"$set": fields})
            if result.matched_count == 0:
                logger.warning("No document matched update", collection=key, filter=str(filter_query))
                return False
            return True
        except PyMongoError as e:
            logger.error("Failed to update document", collection=key, error=str(e))
            raise StoreError(f"Failed to update {key}", detail=str(e)) from e

    async def count(self, key: str, filter_query: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching a filter."""
        try:
            return await self.collection(key).count_documents(filter_query or {})
        except PyMongoError as e:
            logger.error("Failed to count documents", collection=key, error=str(e))
            raise StoreError(f"Failed to count {key}", detail=str(e)) from e

    async def sum_field(self, key: str, field: str, filter_query: Dict[str, Any]) -> float:
        """
        Sum a numeric field over the documents matching a filter.

        Returns:
            float: The sum, 0 when nothing matches
        """
        pipeline = [
            {"$match": filter_query},
            {"$group": {"_id": None, "total": {"$sum": f"${field}"}}},
        ]
        try:
            cursor = self.collection(key).aggregate(pipeline)
            result = await cursor.to_list(length=1)
        except PyMongoError as e:
            logger.error("Failed to aggregate documents", collection=key, field=field, error=str(e))
            raise StoreError(f"Failed to aggregate {key}", detail=str(e)) from e

        if not result:
            return 0
        return result[0].get("total") or 0

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            if self.database is None:
                return {"status": "unhealthy", "error": "not connected"}
            await self.database.command("ping")
            return {"status": "healthy"}
        except PyMongoError as e:
            logger.error("Database health check failed", error=str(e))
            return {"status": "unhealthy", "error": str(e)}

    async def get_database_stats(self) -> Dict[str, int]:
        """Get document counts for monitoring."""
        return {
            "total_books": await self.count(BOOKS),
            "total_users": await self.count(USERS),
            "total_transactions": await self.count(TRANSACTIONS),
            "open_transactions": await self.count(TRANSACTIONS, {"status": "issued"}),
        }
