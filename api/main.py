"""
FastAPI main application for the Book Rental API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import config as api_config
from api.dependencies import get_catalog, get_ledger, get_registry, get_store
from api.models import (
    BookCreateRequest, ErrorResponse, HealthResponse, IssueRequest, IssueResponse,
    ReturnRequest, ReturnResponse, StatsResponse, UserCreateRequest, UserCreatedResponse,
)
from rental.catalog import CatalogService
from rental.database import MongoDBManager
from rental.errors import RentalError
from rental.ledger import RentalLedger
from rental.models import Book, BookHistory, BookRent, TransactionView, User
from rental.registry import UserRegistry
from utilities.config import config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Rental API")

    store = MongoDBManager(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        collection_names=config.collection_names()
    )
    try:
        await store.connect()
        logger.info("Database connection established")
    except RentalError as e:
        logger.error("Failed to connect to database", error=e.message, detail=e.detail)
        raise

    app.state.store = store

    yield

    logger.info("Shutting down Book Rental API")
    await store.disconnect()
    app.state.store = None


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description="""
    A REST API for a book-rental service.

    ## Features

    * **Catalog**: Add books, list them, search by name, category and rent range
    * **Users**: Register and list users
    * **Transactions**: Issue and return books; rent is charged per started day
    * **Reports**: Book history, rent collected per book, user history, issues by date
    """,
    version=api_config.api_version,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


# Exception handlers
@app.exception_handler(RentalError)
async def rental_exception_handler(request: Request, exc: RentalError):
    """Translate domain errors into JSON error responses."""
    if exc.status_code >= 500:
        logger.error("Request failed", error=exc.message, detail=exc.detail, path=request.url.path)
    else:
        logger.info("Request rejected", error=exc.message, status_code=exc.status_code, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            message=exc.message,
            detail=exc.detail if exc.status_code < 500 or api_config.debug else None,
            status_code=exc.status_code
        ).dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies and query strings as 400."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(
            message="Invalid request",
            detail=problems,
            status_code=status.HTTP_400_BAD_REQUEST
        ).dict()
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            message=str(exc.detail),
            status_code=exc.status_code
        ).dict(),
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            message="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).dict()
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    store: Optional[MongoDBManager] = getattr(request.app.state, "store", None)
    db_status = "unavailable"
    if store is not None:
        health_info = await store.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        database_status=db_status
    )


@app.get("/stats", response_model=StatsResponse, tags=["Health"])
async def get_stats(store: MongoDBManager = Depends(get_store)):
    """Get collection counts."""
    return StatsResponse(**await store.get_database_stats())


# Books endpoints
@app.get("/books", response_model=List[Book], tags=["Books"])
async def list_books(catalog: CatalogService = Depends(get_catalog)):
    """List every book in the catalog."""
    return await catalog.list_books()


@app.post("/books", response_model=Book, status_code=status.HTTP_201_CREATED, tags=["Books"])
async def add_book(body: BookCreateRequest, catalog: CatalogService = Depends(get_catalog)):
    """
    Add a book.

    - **name**: Book title
    - **category**: Book category
    - **rentPerDay**: Non-negative rent per day
    """
    return await catalog.add_book(body.name, body.category, body.rent_per_day)


@app.get("/books/search", response_model=List[Book], tags=["Books"])
async def search_books(
    name: Optional[str] = None,
    category: Optional[str] = None,
    min_rent: Optional[str] = Query(None, alias="minRent"),
    max_rent: Optional[str] = Query(None, alias="maxRent"),
    catalog: CatalogService = Depends(get_catalog)
):
    """
    Search books by name.

    - **name**: Case-insensitive part of the title

    When any of **category**, **minRent** or **maxRent** is given, all four
    parameters are required and the search combines them.
    """
    if category is not None or min_rent is not None or max_rent is not None:
        return await catalog.search_by_category_name_range(category, name, min_rent, max_rent)
    return await catalog.search_by_name(name)


@app.get("/books/rent-range", response_model=List[Book], tags=["Books"])
async def search_books_by_rent(
    min_rent: Optional[str] = Query(None, alias="minRent"),
    max_rent: Optional[str] = Query(None, alias="maxRent"),
    catalog: CatalogService = Depends(get_catalog)
):
    """
    Search books whose rent per day lies in a range.

    - **minRent**: Lower bound, inclusive
    - **maxRent**: Upper bound, inclusive
    """
    return await catalog.search_by_rent_range(min_rent, max_rent)


# Users endpoints
@app.post("/users", response_model=UserCreatedResponse, status_code=status.HTTP_201_CREATED, tags=["Users"])
async def add_user(body: UserCreateRequest, registry: UserRegistry = Depends(get_registry)):
    """Register a user."""
    user_id = await registry.add_user(body.name)
    return UserCreatedResponse(user_id=user_id)


@app.get("/users", response_model=List[User], tags=["Users"])
async def list_users(registry: UserRegistry = Depends(get_registry)):
    """List every user."""
    return await registry.list_users()


# Transactions endpoints
@app.get("/transactions", response_model=List[TransactionView], tags=["Transactions"])
async def list_transactions(ledger: RentalLedger = Depends(get_ledger)):
    """List every transaction with its book and user names."""
    return await ledger.list_transactions()


@app.post(
    "/transactions/issue",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Transactions"]
)
async def issue_book(body: IssueRequest, ledger: RentalLedger = Depends(get_ledger)):
    """
    Issue a book to a user.

    - **bookId** or **bookName**: The book
    - **userId** or **username**: The user
    - **issueDate**: ISO 8601 timestamp
    """
    transaction_id = await ledger.issue_book(body.book_ref(), body.user_ref(), body.issue_date)
    return IssueResponse(transaction_id=transaction_id)


@app.post("/transactions/return", response_model=ReturnResponse, tags=["Transactions"])
async def return_book(body: ReturnRequest, ledger: RentalLedger = Depends(get_ledger)):
    """
    Return a book and charge rent.

    - **transactionId**: The open transaction, or
    - **bookId**/**bookName** with **userId**/**username**: the book and its holder
    - **returnDate**: ISO 8601 timestamp
    """
    receipt = await ledger.return_book(body.transaction_ref(), body.return_date)
    return ReturnResponse(
        transaction_id=receipt.transaction_id,
        total_rent=receipt.total_rent,
        days_rented=receipt.days_rented
    )


@app.get("/transactions/issued", response_model=List[TransactionView], tags=["Transactions"])
async def transactions_issued_in_range(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    ledger: RentalLedger = Depends(get_ledger)
):
    """
    List books issued within a date range.

    - **startDate**: ISO 8601 date, inclusive
    - **endDate**: ISO 8601 date, inclusive
    """
    return await ledger.transactions_issued_in_range(start_date, end_date)


@app.get("/transactions/book/{book_name}", response_model=BookHistory, tags=["Transactions"])
async def book_history(book_name: str, ledger: RentalLedger = Depends(get_ledger)):
    """Everyone who rented a book and who holds it now."""
    return await ledger.book_history(book_name)


@app.get("/transactions/rent/{book_name}", response_model=BookRent, tags=["Transactions"])
async def total_rent_for_book(book_name: str, ledger: RentalLedger = Depends(get_ledger)):
    """Total rent collected for a book."""
    return await ledger.total_rent_for_book(book_name)


@app.get("/transactions/user/{identifier}", response_model=List[TransactionView], tags=["Transactions"])
async def transactions_for_user(identifier: str, ledger: RentalLedger = Depends(get_ledger)):
    """Transactions of a user, given the user's id or name."""
    return await ledger.transactions_for_user(identifier)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=api_config.log_level.lower()
    )
