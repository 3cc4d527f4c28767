"""
Pydantic models for rental data validation and serialization.
Implements the Book, User and Transaction schemas, the identifier unions used
to look them up, and the derived views the ledger answers with.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, Field

from .errors import ValidationError


UNKNOWN_BOOK = "Unknown Book"
UNKNOWN_USER = "Unknown User"
NOT_ISSUED = "not issued"


class TransactionStatus(str, Enum):
    """Enum for transaction lifecycle states."""
    ISSUED = "issued"
    RETURNED = "returned"


class Book(BaseModel):
    """Book in the rental catalog."""
    id: str = Field(..., description="Unique book identifier")
    name: str = Field(..., description="Book title")
    category: str = Field(..., description="Book category")
    rent_per_day: float = Field(..., ge=0, alias="rentPerDay", description="Rent charged per day")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "id": "65a1f0c2e4b0a1b2c3d4e5f6",
                "name": "Dune",
                "category": "Science Fiction",
                "rentPerDay": 5,
            }
        },
    }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Book":
        """Build a Book from a raw MongoDB document."""
        return cls(
            id=str(document["_id"]),
            name=document.get("name", ""),
            category=document.get("category", ""),
            rent_per_day=document.get("rentPerDay", 0),
        )


class User(BaseModel):
    """Registered user who can rent books."""
    id: str = Field(..., description="Unique user identifier")
    name: str = Field(..., description="User name")

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "User":
        """Build a User from a raw MongoDB document."""
        return cls(id=str(document["_id"]), name=document.get("name", ""))


class Transaction(BaseModel):
    """A single issue/return record."""
    id: str = Field(..., description="Unique transaction identifier")
    book_id: str = Field(..., alias="bookId", description="Rented book identifier")
    user_id: str = Field(..., alias="userId", description="Renting user identifier")
    issue_date: datetime = Field(..., alias="issueDate", description="When the book was issued")
    return_date: Optional[datetime] = Field(None, alias="returnDate", description="When the book was returned")
    total_rent: Optional[float] = Field(None, alias="totalRent", description="Rent charged on return")
    status: TransactionStatus = Field(..., description="Lifecycle state")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Transaction":
        """Build a Transaction from a raw MongoDB document."""
        return cls(
            id=str(document["_id"]),
            book_id=str(document["bookId"]),
            user_id=str(document["userId"]),
            issue_date=document["issueDate"],
            return_date=document.get("returnDate"),
            total_rent=document.get("totalRent"),
            status=document["status"],
        )


class TransactionView(Transaction):
    """Transaction joined with the names of its book and user."""
    book_name: str = Field(UNKNOWN_BOOK, alias="bookName", description="Rented book title")
    username: str = Field(UNKNOWN_USER, description="Renting user name")


class HistoryEntry(BaseModel):
    """One issuer of a book, as shown in its history."""
    user_id: str = Field(..., alias="userId")
    username: str = Field(UNKNOWN_USER)
    issue_date: datetime = Field(..., alias="issueDate")
    return_date: Optional[datetime] = Field(None, alias="returnDate")
    status: TransactionStatus

    model_config = {"populate_by_name": True}


class CurrentStatus(BaseModel):
    """Who holds a book right now, if anyone."""
    status: str = Field(NOT_ISSUED, description="'issued' or 'not issued'")
    user_id: Optional[str] = Field(None, alias="userId")
    username: Optional[str] = Field(None)
    issue_date: Optional[datetime] = Field(None, alias="issueDate")

    model_config = {"populate_by_name": True}


class BookHistory(BaseModel):
    """Issue history of a single book."""
    book_id: str = Field(..., alias="bookId")
    book_name: str = Field(..., alias="bookName")
    past_issuers: List[HistoryEntry] = Field(default_factory=list, alias="pastIssuers")
    current_status: CurrentStatus = Field(default_factory=CurrentStatus, alias="currentStatus")

    model_config = {"populate_by_name": True}


class BookRent(BaseModel):
    """Total rent collected for a book."""
    book_id: str = Field(..., alias="bookId")
    book_name: str = Field(..., alias="bookName")
    total_rent: float = Field(0, alias="totalRent")

    model_config = {"populate_by_name": True}


class RentReceipt(BaseModel):
    """Outcome of returning a book."""
    transaction_id: str = Field(..., alias="transactionId")
    total_rent: float = Field(..., alias="totalRent")
    days_rented: int = Field(..., alias="daysRented")

    model_config = {"populate_by_name": True}


# Identifier unions

class ById(BaseModel):
    """Refer to a book or user by its store-assigned id."""
    id: str


class ByName(BaseModel):
    """Refer to a book or user by its full name."""
    name: str
    ignore_case: bool = False


EntityRef = Union[ById, ByName]


class ByTransactionId(BaseModel):
    """Refer to a transaction by its id."""
    id: str


class ByHolder(BaseModel):
    """Refer to the open transaction of a book held by a user."""
    book: EntityRef
    user: EntityRef


TransactionRef = Union[ByTransactionId, ByHolder]


def ref_from_identifier(identifier: str) -> EntityRef:
    """Treat ObjectId-shaped identifiers as ids and anything else as a name."""
    if ObjectId.is_valid(identifier):
        return ById(id=identifier)
    return ByName(name=identifier, ignore_case=True)


def to_object_id(value: str, label: str = "id") -> ObjectId:
    """Convert an id string to an ObjectId or raise ValidationError."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise ValidationError(f"Invalid {label}", detail=str(value))
    return ObjectId(value)


def parse_timestamp(value: Any, field_name: str) -> datetime:
    """
    Parse a timestamp into a naive UTC datetime.

    Accepts datetime and date objects and ISO 8601 strings ('Z' suffix
    included). Timezone-aware values are converted to UTC.

    Raises:
        ValidationError: if the value is missing or cannot be parsed
    """
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required")

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(
                f"{field_name} must be a valid ISO 8601 date", detail=value
            ) from None
    else:
        raise ValidationError(f"{field_name} must be a valid ISO 8601 date", detail=str(value))

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def is_date_only(value: Any) -> bool:
    """True when the value names a calendar day without a time of day."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    if isinstance(value, str):
        try:
            date.fromisoformat(value.strip())
        except ValueError:
            return False
        return True
    return False
