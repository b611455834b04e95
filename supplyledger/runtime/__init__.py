"""
SupplyLedger Runtime — hosting helpers.

RuntimeContext wires configuration, signing key, file journal and event
sinks into a ready ProductLedger. LedgerSession runs ledger operations on
behalf of an IdentityProvider.
"""

from supplyledger.runtime.context import RuntimeContext
from supplyledger.runtime.session import LedgerSession

__all__ = [
    "RuntimeContext",
    "LedgerSession",
]
