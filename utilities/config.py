"""
Configuration management using environment variables.
Handles store, logging and ledger settings with proper validation and defaults.
"""

from typing import Optional
from pathlib import Path

from pydantic import Field, validator
from pydantic_settings import BaseSettings


class RentalConfig(BaseSettings):
    """
    Configuration class for the rental service.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="book_rental")
    books_collection: str = Field(default="Books")
    users_collection: str = Field(default="Users")
    transactions_collection: str = Field(default="Transactions")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Ledger Configuration
    min_rental_days: int = Field(default=1)
    enforce_single_holder: bool = Field(default=False)

    # Development/Testing
    debug: bool = Field(default=False)

    @validator('min_rental_days')
    def validate_min_rental_days(cls, v):
        """Ensure the minimum charged days is not negative."""
        if v < 0:
            raise ValueError('min_rental_days must be 0 or greater')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def collection_names(self) -> dict:
        """Map logical collection keys to configured MongoDB collection names."""
        return {
            "books": self.books_collection,
            "users": self.users_collection,
            "transactions": self.transactions_collection,
        }


# Global configuration instance
config = RentalConfig()
