"""
FastAPI dependency providers.

The store is opened once in the application lifespan and kept on
``app.state``; every request builds its services around that handle.
"""

from fastapi import Depends, Request

from rental.catalog import CatalogService
from rental.database import MongoDBManager
from rental.errors import StoreError
from rental.ledger import RentalLedger
from rental.registry import UserRegistry
from utilities.config import config


def get_store(request: Request) -> MongoDBManager:
    """Return the shared store handle."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreError("Database service not available")
    return store


def get_catalog(store: MongoDBManager = Depends(get_store)) -> CatalogService:
    return CatalogService(store)


def get_registry(store: MongoDBManager = Depends(get_store)) -> UserRegistry:
    return UserRegistry(store)


def get_ledger(
    store: MongoDBManager = Depends(get_store),
    catalog: CatalogService = Depends(get_catalog),
    registry: UserRegistry = Depends(get_registry),
) -> RentalLedger:
    return RentalLedger(
        store,
        catalog,
        registry,
        minimum_days=config.min_rental_days,
        single_holder=config.enforce_single_holder,
    )
