# GearHire - Event Equipment Rental and Booking Engine
# Copyright (C) 2025 The GearHire Authors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""Configuration management for GearHire."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AppConfig(BaseModel):
    """Application configuration."""

    name: str = "GearHire"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    base_url: str = "http://localhost:8000"


class AdminConfig(BaseModel):
    """Initial administrator seeded on first start."""

    email: str = "admin@example.com"
    first_name: str = "System"
    last_name: str = "Administrator"


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "/data/gearhire.db"
    url: Optional[str] = None  # Full SQLAlchemy URL, overrides path


class BookingConfig(BaseModel):
    """Booking and custody limits."""

    max_items_per_request: int = 100


class FinanceConfig(BaseModel):
    """Quote and invoice defaults."""

    currency_symbol: str = "R"
    default_tax_rate: float = 15.0  # Percent
    payment_terms_days: int = 30
    quote_validity_days: int = 30


class SchedulerConfig(BaseModel):
    """Background housekeeping configuration."""

    enabled: bool = True
    housekeeping_cron: str = "0 6 * * *"
    reminders_cron: str = "0 * * * *"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseModel):
    """Main settings container."""

    app: AppConfig = Field(default_factory=AppConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)
    finance: FinanceConfig = Field(default_factory=FinanceConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Optional[str] = None) -> Settings:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, tries default locations.

    Returns:
        Settings object with loaded configuration.
    """
    default_paths = [
        Path("config/config.yaml"),
        Path("config.yaml"),
        Path("/app/config/config.yaml"),
        Path("/etc/gearhire/config.yaml"),
    ]

    # Allow override via environment variable
    if config_path is None:
        config_path = os.environ.get("GEARHIRE_CONFIG")

    config_file = None

    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for path in default_paths:
            if path.exists():
                config_file = path
                break

    if config_file is None:
        logger.info("No config file found, using defaults")
        return Settings()

    logger.info("Loading config from: %s", config_file)

    with open(config_file, "r") as f:
        config_data = yaml.safe_load(f) or {}

    return Settings(**config_data)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def init_settings(config_path: Optional[str] = None) -> Settings:
    """Initialize settings from config file."""
    global _settings
    _settings = load_config(config_path)
    return _settings


def update_settings(new_settings: Settings) -> None:
    """Replace the global settings instance."""
    global _settings
    _settings = new_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the logging section to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.logging.level.upper(), logging.INFO),
        format=settings.logging.format,
    )
