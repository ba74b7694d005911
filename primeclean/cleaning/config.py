"""Settings for the booking engine and web application.

Values come from environment variables (a local ``.env`` file is loaded
first) and fall back to the defaults below.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid integer for {env_var}: {raw!r}") from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(f"Invalid float for {env_var}: {raw!r}") from None


@dataclass(frozen=True)
class BusinessConfig:
    """Details printed on invoices."""

    name: str = field(default_factory=lambda: os.getenv("BUSINESS_NAME", "Premier Prime Cleaning Services"))
    tax_id: str = field(default_factory=lambda: os.getenv("TAX_ID", "FL-59-123456789"))
    country: str = field(default_factory=lambda: os.getenv("BUSINESS_COUNTRY", "United States"))


@dataclass(frozen=True)
class BillingConfig:
    """Invoice numbering, payment terms and pricing."""

    invoice_prefix: str = field(default_factory=lambda: os.getenv("INVOICE_PREFIX", "PP"))
    due_days: int = field(default_factory=lambda: _safe_int("INVOICE_DUE_DAYS", "30"))
    base_area_sqm: float = field(default_factory=lambda: _safe_float("PRICING_BASE_AREA_SQM", "100"))


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    database_path: str = field(default_factory=lambda: os.getenv("DATABASE_PATH", "primeclean.db"))
    secret_key: str = field(default_factory=lambda: os.getenv("SECRET_KEY", "primeclean-secret"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.billing.due_days < 0:
        raise ValueError(f"INVOICE_DUE_DAYS must be >= 0, got {config.billing.due_days}")
    if config.billing.base_area_sqm <= 0:
        raise ValueError(
            f"PRICING_BASE_AREA_SQM must be > 0, got {config.billing.base_area_sqm}"
        )
    if not config.billing.invoice_prefix.strip():
        raise ValueError("INVOICE_PREFIX must not be empty")
    if not config.database_path:
        raise ValueError("DATABASE_PATH must not be empty")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config
