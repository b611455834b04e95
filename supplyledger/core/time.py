"""
supplyledger/core/time.py

The single timestamp source for SupplyLedger.

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

Journal records, history entries and events all take their timestamps
from ledger_timestamp(), or from a clock with the same signature injected
into ProductLedger for deterministic tests.
"""

import re
from datetime import datetime, timezone


TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


def ledger_timestamp() -> str:
    """
    Return current UTC time in ledger wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"


def is_ledger_timestamp(value) -> bool:
    """True if value is a string in ledger wire format."""
    return isinstance(value, str) and bool(TIMESTAMP_RE.match(value))
