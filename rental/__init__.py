"""
Rental domain package for the Book Rental API.

This package contains:
- Book, user and transaction models
- MongoDB document store
- Catalog service
- User registry
- Rental ledger with the rent rule
"""

__version__ = "1.0.0"
