"""
supplyledger/core/models.py

Ledger data model.

Everything here is an immutable snapshot. The ledger keeps its own mutable
state internally and hands out these records from its read accessors, so a
caller holding a Product can never observe (or cause) a later mutation.
"""

from dataclasses import dataclass
from typing import Any, Dict, NamedTuple, Optional


# ─────────────────────────────────────────────────────────────
# Products
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StatusHistoryEntry:
    """One recorded status change. Appended, never edited."""
    status:    int
    location:  str
    timestamp: str
    actor:     str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status":    self.status,
            "location":  self.location,
            "timestamp": self.timestamp,
            "actor":     self.actor,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusHistoryEntry":
        return cls(
            status=    data["status"],
            location=  data["location"],
            timestamp= data["timestamp"],
            actor=     data["actor"],
        )


@dataclass(frozen=True)
class Product:
    """Point-in-time view of a registered product."""
    product_id:        int
    product_name:      str
    manufacturer_name: str
    current_status:    int
    current_owner:     str
    registered_by:     str
    registered_at:     str
    exists:            bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id":        self.product_id,
            "product_name":      self.product_name,
            "manufacturer_name": self.manufacturer_name,
            "current_status":    self.current_status,
            "current_owner":     self.current_owner,
            "registered_by":     self.registered_by,
            "registered_at":     self.registered_at,
            "exists":            self.exists,
        }


class ProductVerification(NamedTuple):
    """
    Result of ProductLedger.verify_product().

    Unpacks as a plain tuple:
        exists, name, status = ledger.verify_product(1001)
    """
    exists: bool
    name:   str
    status: int


# ─────────────────────────────────────────────────────────────
# Events
# ─────────────────────────────────────────────────────────────

class EventType:
    """
    Notification names published after each committed mutation.
    Tracking front-ends subscribe by these exact strings.
    """
    PARTICIPANT_AUTHORIZED = "ParticipantAuthorized"
    PARTICIPANT_REVOKED    = "ParticipantRevoked"
    PRODUCT_REGISTERED     = "ProductRegistered"
    STATUS_UPDATED         = "StatusUpdated"
    OWNERSHIP_TRANSFERRED  = "OwnershipTransferred"


@dataclass(frozen=True)
class LedgerEvent:
    """
    A notification record: {type, args..., timestamp}.

    sequence is the journal sequence of the mutation that produced the
    event, or None when the ledger runs without a journal.
    """
    event_type: str
    args:       Dict[str, Any]
    timestamp:  str
    sequence:   Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type":      self.event_type,
            "timestamp": self.timestamp,
            **self.args,
        }
        if self.sequence is not None:
            data["sequence"] = self.sequence
        return data
