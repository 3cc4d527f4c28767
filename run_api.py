#!/usr/bin/env python3
"""
Script to run the Book Rental API server.
"""

import uvicorn

from api.config import config
from utilities.config import config as rental_config
from utilities.logger import get_logger, setup_logging


def main():
    """Run the API server."""
    setup_logging(
        log_level=rental_config.log_level,
        log_format=rental_config.log_format,
        log_file=rental_config.get_log_file_path(),
        debug=rental_config.debug
    )

    logger = get_logger(__name__)
    logger.info(
        "Starting Book Rental API server",
        host=config.host,
        port=config.port,
        debug=config.debug,
        database=rental_config.mongodb_database
    )

    uvicorn.run(
        "api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
