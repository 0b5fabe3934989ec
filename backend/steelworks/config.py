"""
Steelworks configuration — single source of truth for business constants and
environment-derived settings.

Import from here in routes and services rather than hardcoding values.
"""
from __future__ import annotations

import os

# ── Quote pricing policy ──────────────────────────────────────────────────────

# Lines below this margin need an explicit override to save
MINIMUM_MARGIN_FLOOR: int = 25

# Sell prices land on multiples of this (GBP)
SELL_PRICE_ROUNDING: int = 25

# Entered unit cost vs catalogue guide cost; beyond this the line is flagged
COST_DEVIATION_THRESHOLD: float = 0.15

# Exclusive magnitude limits matching the storage columns:
# money Numeric(12, 2), line margin Numeric(6, 2), quote margin Numeric(8, 4),
# hours Numeric(10, 2), weekly capacity Numeric(8, 2), quantity INTEGER
MONEY_LIMIT: int = 10 ** 10
MARGIN_LIMIT: int = 10 ** 4
HOURS_LIMIT: int = 10 ** 8
WEEKLY_HOURS_LIMIT: int = 10 ** 6
QUANTITY_LIMIT: int = 2 ** 31

# First quote number issued when the table is empty (Q-1001)
QUOTE_NUMBER_START: int = 1001

# Projects are numbered sequentially from here (100001, 100002, ...)
PROJECT_NUMBER_START: int = 100001

PROJECT_STATUSES: tuple[str, ...] = (
    "OPPORTUNITY", "QUOTATION", "DESIGN", "MANUFACTURE", "INSTALLATION", "REVIEW", "COMPLETE",
)

QUOTE_STATUSES: tuple[str, ...] = ("DRAFT", "SUBMITTED", "WON", "LOST")

UNIT_OPTIONS: tuple[str, ...] = (
    "nr", "item", "set", "lot", "m", "m2", "m3", "kg", "tonne", "day", "week", "trip",
)


# ── Capacity planning ─────────────────────────────────────────────────────────

DEFAULT_WEEKS_TO_SHOW: int = 12
MAX_WEEKS_TO_SHOW: int = 52

# Rolled-up status cards look this many weeks ahead
SUMMARY_WEEKS: int = 4

# Seeded into department_capacities when the table is empty
DEFAULT_CAPACITIES: list[dict] = [
    {"department": "DESIGN", "display_name": "Design", "hours_per_week": 120, "headcount": 3},
    {"department": "OPS", "display_name": "Ops", "hours_per_week": 80, "headcount": 2},
    {"department": "PRODUCTION", "display_name": "Production", "hours_per_week": 200, "headcount": 5},
    {"department": "INSTALLATION", "display_name": "Installation", "hours_per_week": 160, "headcount": 4},
]

# RAG: AMBER when the target date is this many days away or fewer
RAG_AMBER_DAYS: int = 7


# ── Environment ───────────────────────────────────────────────────────────────

JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "changethis_use_a_real_secret_in_production_64chars")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON: bool = os.getenv("LOG_FORMAT", "json").lower() != "text"

CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8000").split(",")
    if o.strip()
]

COMPANY_NAME: str = os.getenv("COMPANY_NAME", "MM Engineered Solutions Ltd")
COMPANY_STRAPLINE: str = os.getenv(
    "COMPANY_STRAPLINE", "Precision Steel Fabrication & Installation"
)
