# src/itorero/utils/timezone.py
from __future__ import annotations

import os
import logging
from datetime import datetime, date
from dotenv import load_dotenv

import pytz

# -----------------------------------------------------------------------------
# Load environment variables
# -----------------------------------------------------------------------------
load_dotenv()

# Default to Kigali time if not set in .env
_TZ_ENV = os.getenv("TIMEZONE", "Africa/Kigali")

# -----------------------------------------------------------------------------
# Configure local timezone with fallback
# -----------------------------------------------------------------------------
try:
    LOCAL_TZ = pytz.timezone(_TZ_ENV)
except Exception as exc:
    logging.getLogger(__name__).warning(
        "Invalid TIMEZONE '%s' in environment; falling back to Africa/Kigali. Error: %s",
        _TZ_ENV,
        exc
    )
    LOCAL_TZ = pytz.timezone("Africa/Kigali")


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------
def now_local() -> datetime:
    """
    Return the current time as a timezone-aware datetime in the configured local timezone.
    """
    return datetime.now(LOCAL_TZ)


def today_local() -> date:
    """
    Return the current date in the configured local timezone.
    """
    return now_local().date()


def as_local(dt: datetime) -> datetime:
    """
    Attach the local timezone to naive datetimes read back from the database
    (sqlite drops tzinfo); aware datetimes are converted.
    """
    if dt.tzinfo is None:
        return LOCAL_TZ.localize(dt)
    return dt.astimezone(LOCAL_TZ)
