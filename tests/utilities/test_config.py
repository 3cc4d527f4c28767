"""
Unit tests for configuration and logging setup.
"""

import logging

import pytest
from pydantic import ValidationError

from utilities.config import RentalConfig
from utilities.logger import build_processors, get_logger, setup_logging


class TestRentalConfig:
    """Test cases for RentalConfig."""

    def test_defaults(self):
        config = RentalConfig(_env_file=None)

        assert config.mongodb_database == "book_rental"
        assert config.min_rental_days == 1
        assert config.enforce_single_holder is False
        assert config.collection_names() == {
            "books": "Books",
            "users": "Users",
            "transactions": "Transactions",
        }

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("TRANSACTIONS_COLLECTION", "Rentals")
        monkeypatch.setenv("ENFORCE_SINGLE_HOLDER", "true")

        config = RentalConfig(_env_file=None)

        assert config.collection_names()["transactions"] == "Rentals"
        assert config.enforce_single_holder is True

    def test_log_level_is_normalized(self):
        assert RentalConfig(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            RentalConfig(_env_file=None, log_level="LOUD")

    def test_invalid_log_format(self):
        with pytest.raises(ValidationError):
            RentalConfig(_env_file=None, log_format="xml")

    def test_negative_minimum_days(self):
        with pytest.raises(ValidationError):
            RentalConfig(_env_file=None, min_rental_days=-1)

    def test_log_file_path(self):
        assert RentalConfig(_env_file=None).get_log_file_path() is None
        assert RentalConfig(_env_file=None, log_file="logs/api.log").get_log_file_path().name == "api.log"


class TestLogging:
    """Test cases for structlog setup."""

    def test_json_renderer_is_last(self):
        processors = build_processors("json")
        assert type(processors[-1]).__name__ == "JSONRenderer"

    def test_console_renderer(self):
        processors = build_processors("console", debug=True)
        assert type(processors[-1]).__name__ == "ConsoleRenderer"
        assert any(type(p).__name__ == "CallsiteParameterAdder" for p in processors)

    def test_setup_logging_adds_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "rental.log"

        setup_logging(log_level="INFO", log_format="json", log_file=log_file)

        root = logging.getLogger()
        handlers = [
            h for h in root.handlers
            if isinstance(h, logging.FileHandler) and h.baseFilename == str(log_file)
        ]
        try:
            assert log_file.parent.is_dir()
            assert len(handlers) == 1
            assert handlers[0].level == logging.INFO
        finally:
            for handler in handlers:
                root.removeHandler(handler)
                handler.close()

    def test_get_logger(self):
        assert get_logger("rental.ledger") is not None


def test_run_api_logs_through_get_logger(monkeypatch):
    """Test that the launcher sets up logging and starts uvicorn on the app."""
    import run_api

    calls = {}
    monkeypatch.setattr(run_api, "setup_logging", lambda **kwargs: calls.setdefault("logging", kwargs))
    monkeypatch.setattr(run_api.uvicorn, "run", lambda app, **kwargs: calls.setdefault("app", app))

    run_api.main()

    assert calls["app"] == "api.main:app"
    assert calls["logging"]["log_format"] == run_api.rental_config.log_format
