"""
supplyledger/__init__.py

SupplyLedger: embedded supply-chain product ledger.

Authorization-gated product registration, forward-only status
progression, ownership transfer and full status history, backed by an
Ed25519-signed, hash-chained journal.

    from supplyledger import ProductLedger, ProductStatus

    ledger = ProductLedger(admin="0xadmin")
    ledger.authorize_participant("0xadmin", "0xfarm")
    ledger.register_product("0xfarm", 1001, "Organic Coffee", "Ethiopian Farms")
    ledger.update_status("0xfarm", 1001, ProductStatus.IN_TRANSIT, "Warehouse A")
"""

__version__ = "0.1.0"

from supplyledger.core.audit import AuditSummary, JournalAudit, Violation
from supplyledger.core.config import LedgerConfig, load_config
from supplyledger.core.crypto import Ed25519KeyManager
from supplyledger.core.events import (
    CallbackEventSink,
    EventSink,
    FanoutEventSink,
    LoggingEventSink,
    MemoryEventSink,
)
from supplyledger.core.exceptions import (
    CannotRevokeAdmin,
    ConfigError,
    DuplicateProduct,
    EmptyLocation,
    EmptyName,
    IntegrityError,
    InvalidProductId,
    InvalidProgression,
    InvalidStatus,
    JournalError,
    LedgerRejection,
    NewOwnerNotAuthorized,
    NotAuthorized,
    NotCurrentOwner,
    ProductNotFound,
    SelfTransfer,
    SupplyLedgerError,
)
from supplyledger.core.identity import (
    ContextIdentity,
    IdentityProvider,
    KeyIdentity,
    StaticIdentity,
    acting_as,
)
from supplyledger.core.journal import FileJournal, Journal, JournalRecord, RecordType
from supplyledger.core.ledger import ProductLedger
from supplyledger.core.log import configure_logging
from supplyledger.core.models import (
    EventType,
    LedgerEvent,
    Product,
    ProductVerification,
    StatusHistoryEntry,
)
from supplyledger.core.status import ProductStatus, StatusScale
from supplyledger.core.time import ledger_timestamp
from supplyledger.runtime import LedgerSession, RuntimeContext

__all__ = [
    # Ledger
    "ProductLedger",
    "ProductStatus",
    "StatusScale",
    "Product",
    "ProductVerification",
    "StatusHistoryEntry",
    # Events
    "EventType",
    "LedgerEvent",
    "EventSink",
    "MemoryEventSink",
    "CallbackEventSink",
    "LoggingEventSink",
    "FanoutEventSink",
    # Persistence
    "Journal",
    "FileJournal",
    "JournalRecord",
    "RecordType",
    "JournalAudit",
    "AuditSummary",
    "Violation",
    "Ed25519KeyManager",
    # Identity / hosting
    "IdentityProvider",
    "StaticIdentity",
    "KeyIdentity",
    "ContextIdentity",
    "acting_as",
    "LedgerSession",
    "RuntimeContext",
    "LedgerConfig",
    "load_config",
    "configure_logging",
    "ledger_timestamp",
    # Errors
    "SupplyLedgerError",
    "LedgerRejection",
    "NotAuthorized",
    "CannotRevokeAdmin",
    "InvalidProductId",
    "EmptyName",
    "DuplicateProduct",
    "ProductNotFound",
    "EmptyLocation",
    "InvalidStatus",
    "InvalidProgression",
    "NotCurrentOwner",
    "NewOwnerNotAuthorized",
    "SelfTransfer",
    "JournalError",
    "IntegrityError",
    "ConfigError",
]
