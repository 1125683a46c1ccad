#!/usr/bin/env python3
# GearHire - Event Equipment Rental and Booking Engine
# Copyright (C) 2025 The GearHire Authors
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Database initialization script."""

import logging

from gearhire.config import configure_logging, init_settings
from gearhire.database import get_database_url, init_database

logger = logging.getLogger("gearhire.init_db")


def main():
    """Initialize the database."""
    # Load configuration
    settings = init_settings()
    configure_logging(settings)
    logger.info("Initializing GearHire database at %s", get_database_url())

    # Initialize database
    init_database()

    logger.info("Database initialization complete")


if __name__ == "__main__":
    main()
