"""
API models and schemas for the FastAPI application.

Domain views (books, users, transactions, history) are defined in
``rental.models``; this module holds request bodies and API-only responses.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt

from rental.errors import ValidationError
from rental.models import ById, ByHolder, ByName, ByTransactionId, EntityRef, TransactionRef


def entity_ref(
    entity_id: Optional[str],
    name: Optional[str],
    id_field: str,
    name_field: str
) -> EntityRef:
    """Pick the id when given, otherwise the name."""
    if entity_id:
        return ById(id=entity_id)
    if name:
        return ByName(name=name)
    raise ValidationError(f"{id_field} or {name_field} is required")


class BookCreateRequest(BaseModel):
    """Request body for adding a book."""
    name: Optional[str] = Field(None, description="Book title")
    category: Optional[str] = Field(None, description="Book category")
    rent_per_day: Optional[Union[StrictInt, StrictFloat]] = Field(
        None, alias="rentPerDay", description="Rent charged per day"
    )

    model_config = {"populate_by_name": True}


class UserCreateRequest(BaseModel):
    """Request body for adding a user."""
    name: Optional[str] = Field(None, description="User name")


class UserCreatedResponse(BaseModel):
    """Response for a newly added user."""
    message: str = "User added successfully"
    user_id: str = Field(..., alias="userId")

    model_config = {"populate_by_name": True}


class IssueRequest(BaseModel):
    """Request body for issuing a book; ids win over names."""
    book_id: Optional[str] = Field(None, alias="bookId")
    book_name: Optional[str] = Field(None, alias="bookName")
    user_id: Optional[str] = Field(None, alias="userId")
    username: Optional[str] = Field(None)
    issue_date: Optional[str] = Field(None, alias="issueDate", description="ISO 8601 timestamp")

    model_config = {"populate_by_name": True}

    def book_ref(self) -> EntityRef:
        return entity_ref(self.book_id, self.book_name, "bookId", "bookName")

    def user_ref(self) -> EntityRef:
        return entity_ref(self.user_id, self.username, "userId", "username")


class IssueResponse(BaseModel):
    """Response for an issued book."""
    message: str = "Book issued successfully"
    transaction_id: str = Field(..., alias="transactionId")

    model_config = {"populate_by_name": True}


class ReturnRequest(BaseModel):
    """
    Request body for returning a book.

    Either ``transactionId`` or the book and user holding it must be given.
    """
    transaction_id: Optional[str] = Field(None, alias="transactionId")
    book_id: Optional[str] = Field(None, alias="bookId")
    book_name: Optional[str] = Field(None, alias="bookName")
    user_id: Optional[str] = Field(None, alias="userId")
    username: Optional[str] = Field(None)
    return_date: Optional[str] = Field(None, alias="returnDate", description="ISO 8601 timestamp")

    model_config = {"populate_by_name": True}

    def transaction_ref(self) -> TransactionRef:
        if self.transaction_id:
            return ByTransactionId(id=self.transaction_id)
        if (self.book_id or self.book_name) and (self.user_id or self.username):
            return ByHolder(
                book=entity_ref(self.book_id, self.book_name, "bookId", "bookName"),
                user=entity_ref(self.user_id, self.username, "userId", "username"),
            )
        raise ValidationError("transactionId, or bookId/bookName with userId/username, is required")


class ReturnResponse(BaseModel):
    """Response for a returned book."""
    message: str = "Book returned successfully"
    transaction_id: str = Field(..., alias="transactionId")
    total_rent: float = Field(..., alias="totalRent")
    days_rented: int = Field(..., alias="daysRented")

    model_config = {"populate_by_name": True}


class ErrorResponse(BaseModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")


class StatsResponse(BaseModel):
    """Collection counts."""
    total_books: int
    total_users: int
    total_transactions: int
    open_transactions: int