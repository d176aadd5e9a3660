"""
Core utilities module for vaultsearch.
"""

from .datetime_utils import (
    utc_now,
    ensure_utc,
    format_iso,
    epoch_ms_to_datetime,
)
from .retry import retry_async
from .timeout import run_with_timeout

__all__ = [
    'utc_now',
    'ensure_utc',
    'format_iso',
    'epoch_ms_to_datetime',
    'retry_async',
    'run_with_timeout',
]
