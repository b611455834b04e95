"""
supplyledger/core/ledger.py

ProductLedger — the authorization-gated product registry.

State machine per product:

    Unregistered ──register──▶ stage 0 ──update──▶ stage 1 ──▶ ... ──▶ terminal

Every mutating operation follows the same order under the write lock:
  1. Validate every precondition      — raise a LedgerRejection, state untouched
  2. Commit the mutation to the journal — raise JournalError, state untouched
  3. Apply the mutation in memory
  4. Queue the notification
Queued notifications are published after the write lock is released, in
commit order, before the operation returns. Sinks may therefore read from
the ledger inside publish().

Reads take the lock in shared mode and return immutable snapshots.

Rebuilding from a journal (ProductLedger.open) re-applies committed
payloads through the same _apply_* functions used by live operations, so
replayed state cannot drift from live state.
"""

import collections
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from supplyledger.core.events import EventSink
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
)
from supplyledger.core.journal import Journal, JournalRecord, RecordType
from supplyledger.core.locking import ReadWriteLock
from supplyledger.core.models import (
    EventType,
    LedgerEvent,
    Product,
    ProductVerification,
    StatusHistoryEntry,
)
from supplyledger.core.status import StatusScale
from supplyledger.core.time import is_ledger_timestamp, ledger_timestamp


logger = logging.getLogger(__name__)


UNSPECIFIED_LOCATION = "unspecified"


@dataclass
class _ProductState:
    """Mutable per-product state. Never leaves the ledger."""
    product_id:        int
    product_name:      str
    manufacturer_name: str
    current_status:    int
    current_owner:     str
    registered_by:     str
    registered_at:     str

    def snapshot(self) -> Product:
        return Product(
            product_id=        self.product_id,
            product_name=      self.product_name,
            manufacturer_name= self.manufacturer_name,
            current_status=    self.current_status,
            current_owner=     self.current_owner,
            registered_by=     self.registered_by,
            registered_at=     self.registered_at,
        )


class ProductLedger:
    """
    Registry of products with forward-only status and an ownership chain.

        ledger = ProductLedger(admin="0xadmin")
        ledger.authorize_participant("0xadmin", "0xfarm")
        ledger.register_product("0xfarm", 1001, "Organic Coffee", "Ethiopian Farms")
        ledger.update_status("0xfarm", 1001, ProductStatus.IN_TRANSIT, "Warehouse A")

    Args:
        admin:     Identity that owns the ledger. Permanently authorized.
        statuses:  StatusScale or list of stage names. Default
                   Manufactured / InTransit / Delivered.
        journal:   Journal to commit mutations to. None keeps state in
                   memory only. Must be empty; use open() for an existing one.
        sink:      EventSink receiving one LedgerEvent per mutation.
        clock:     Zero-arg callable returning a ledger wire timestamp.
        require_owner_for_status:
                   When True, only the current owner may update status.
    """

    def __init__(
        self,
        admin:    str,
        statuses: Union[StatusScale, Iterable[str], None] = None,
        journal:  Optional[Journal] = None,
        sink:     Optional[EventSink] = None,
        clock:    Optional[Callable[[], str]] = None,
        require_owner_for_status: bool = False,
    ) -> None:
        if not isinstance(admin, str) or not admin:
            raise ValueError("admin must be a non-empty identity string")
        if journal is not None and len(journal) > 0:
            raise JournalError(
                "Journal already holds records. Use ProductLedger.open() to restore it."
            )

        self._init_state(
            admin=                    admin,
            scale=                    _as_scale(statuses),
            journal=                  journal,
            sink=                     sink,
            clock=                    clock,
            require_owner_for_status= require_owner_for_status,
        )

        if self._journal is not None:
            self._journal.commit(
                RecordType.GENESIS,
                self._genesis_payload(),
                timestamp=self._now(),
            )
        logger.info(
            "ledger created admin=%s stages=%s", admin, list(self._scale.names)
        )

    @classmethod
    def open(
        cls,
        journal:  Journal,
        admin:    Optional[str] = None,
        statuses: Union[StatusScale, Iterable[str], None] = None,
        sink:     Optional[EventSink] = None,
        clock:    Optional[Callable[[], str]] = None,
        require_owner_for_status: Optional[bool] = None,
    ) -> "ProductLedger":
        """
        Restore a ledger from a journal, or start a new one on an empty journal.

        An existing journal is verified (sequence, chain, signatures) before
        anything is applied. Every record must be signed by the journal's own
        key, so a journal reopens only with the key that wrote it. The admin,
        stages and ownership rule come from its genesis record. Passing an
        admin or statuses that disagree with the genesis raises ConfigError.

        Replay does not publish events.

        Raises:
            ConfigError     — empty journal and no admin, or genesis mismatch
            IntegrityError  — journal fails verification
        """
        if len(journal) == 0:
            if not admin:
                raise ConfigError("A new ledger needs an admin identity")
            return cls(
                admin=    admin,
                statuses= statuses,
                journal=  journal,
                sink=     sink,
                clock=    clock,
                require_owner_for_status= bool(require_owner_for_status),
            )

        records = journal.records()
        _verify_records(records, trusted_signer=journal.key_manager.public_key_hex)

        genesis = records[0].payload
        scale   = StatusScale(genesis["statuses"])
        if admin and admin != genesis["admin"]:
            raise ConfigError(
                "Admin does not match the journal genesis",
                {"configured": admin, "journal": genesis["admin"]},
            )
        if statuses is not None and _as_scale(statuses) != scale:
            raise ConfigError(
                "Status stages do not match the journal genesis",
                {"configured": list(_as_scale(statuses).names), "journal": list(scale.names)},
            )
        genesis_rule = bool(genesis.get("require_owner_for_status", False))
        if require_owner_for_status is not None and require_owner_for_status != genesis_rule:
            raise ConfigError(
                "Ownership rule does not match the journal genesis",
                {"configured": require_owner_for_status, "journal": genesis_rule},
            )

        ledger = cls.__new__(cls)
        ledger._init_state(
            admin=                    genesis["admin"],
            scale=                    scale,
            journal=                  journal,
            sink=                     sink,
            clock=                    clock,
            require_owner_for_status= genesis_rule,
        )
        for record in records[1:]:
            ledger._apply(record.record_type, record.payload)

        logger.info(
            "ledger restored from %d journal records: %d products, %d participants",
            len(records), ledger._total, len(ledger.participants()),
        )
        return ledger

    def _init_state(
        self,
        admin:    str,
        scale:    StatusScale,
        journal:  Optional[Journal],
        sink:     Optional[EventSink],
        clock:    Optional[Callable[[], str]],
        require_owner_for_status: bool,
    ) -> None:
        self._admin    = admin
        self._scale    = scale
        self._journal  = journal
        self._sink     = sink or EventSink()
        self._clock    = clock or ledger_timestamp
        self._require_owner_for_status = require_owner_for_status

        self._rw             = ReadWriteLock()
        self._publish_lock   = threading.RLock()
        self._outbox: collections.deque = collections.deque()

        self._authorized: Dict[str, bool]                     = {admin: True}
        self._products:   Dict[int, _ProductState]            = {}
        self._history:    Dict[int, List[StatusHistoryEntry]] = {}
        self._total:      int                                 = 0

    # ── Participants ──────────────────────────────────────────

    def authorize_participant(self, caller: str, target: str) -> None:
        """Admin only. Marks target as authorized. Re-authorizing is allowed."""
        _require_identity(target, "target")
        with self._rw.write():
            if caller != self._admin:
                raise self._reject(
                    "authorize_participant",
                    NotAuthorized("Only admin can perform this action", {"caller": caller}),
                )
            payload = {"participant": target, "timestamp": self._now()}
            record  = self._commit(RecordType.AUTHORIZE_PARTICIPANT, payload)
            self._apply_authorize(payload)
            self._queue(
                EventType.PARTICIPANT_AUTHORIZED,
                {"participant": target},
                payload["timestamp"],
                record,
            )
        self._flush_events()

    def revoke_participant(self, caller: str, target: str) -> None:
        """Admin only. The admin itself can never be revoked."""
        _require_identity(target, "target")
        with self._rw.write():
            if caller != self._admin:
                raise self._reject(
                    "revoke_participant",
                    NotAuthorized("Only admin can perform this action", {"caller": caller}),
                )
            if target == self._admin:
                raise self._reject("revoke_participant", CannotRevokeAdmin())
            payload = {"participant": target, "timestamp": self._now()}
            record  = self._commit(RecordType.REVOKE_PARTICIPANT, payload)
            self._apply_revoke(payload)
            self._queue(
                EventType.PARTICIPANT_REVOKED,
                {"participant": target},
                payload["timestamp"],
                record,
            )
        self._flush_events()

    def is_authorized(self, identity: str) -> bool:
        with self._rw.read():
            return self._authorized.get(identity, False)

    def participants(self) -> List[str]:
        """Currently authorized identities, sorted."""
        with self._rw.read():
            return sorted(i for i, ok in self._authorized.items() if ok)

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def status_scale(self) -> StatusScale:
        return self._scale

    @property
    def require_owner_for_status(self) -> bool:
        return self._require_owner_for_status

    # ── Products: mutations ───────────────────────────────────

    def register_product(
        self,
        caller:            str,
        product_id:        int,
        product_name:      str,
        manufacturer_name: str,
        location:          Optional[str] = None,
    ) -> Product:
        """
        Register a new product at the first stage, owned by caller.

        The initial history entry's location is `location` when given,
        otherwise the manufacturer name.
        """
        op = "register_product"
        with self._rw.write():
            if not self._authorized.get(caller, False):
                raise self._reject(op, NotAuthorized(details={"caller": caller}))
            if not _valid_product_id(product_id):
                raise self._reject(op, InvalidProductId(details={"product_id": product_id}))
            if not isinstance(product_name, str) or not product_name:
                raise self._reject(op, EmptyName())
            if product_id in self._products:
                raise self._reject(op, DuplicateProduct(details={"product_id": product_id}))
            if location is not None and (not isinstance(location, str) or not location):
                raise self._reject(op, EmptyLocation())

            payload = {
                "product_id":        product_id,
                "product_name":      product_name,
                "manufacturer_name": manufacturer_name or "",
                "location":          location or manufacturer_name or UNSPECIFIED_LOCATION,
                "actor":             caller,
                "timestamp":         self._now(),
            }
            record  = self._commit(RecordType.REGISTER_PRODUCT, payload)
            product = self._apply_register(payload)
            self._queue(
                EventType.PRODUCT_REGISTERED,
                {
                    "product_id":   product_id,
                    "product_name": product_name,
                    "manufacturer": caller,
                },
                payload["timestamp"],
                record,
            )
        self._flush_events()
        return product

    def update_status(
        self,
        caller:     str,
        product_id: int,
        new_status: Union[int, str],
        location:   str,
    ) -> Product:
        """
        Move a product strictly forward along the status scale.

        new_status may be an ordinal or a stage name. Any authorized
        participant may update, unless the ledger was built with
        require_owner_for_status=True.
        """
        op = "update_status"
        with self._rw.write():
            if not self._authorized.get(caller, False):
                raise self._reject(op, NotAuthorized(details={"caller": caller}))
            state = self._products.get(product_id) if _valid_product_id(product_id) else None
            if state is None:
                raise self._reject(op, ProductNotFound(details={"product_id": product_id}))
            if self._require_owner_for_status and caller != state.current_owner:
                raise self._reject(op, NotCurrentOwner(details={"product_id": product_id}))
            if not isinstance(location, str) or not location:
                raise self._reject(op, EmptyLocation())
            try:
                status = self._scale.resolve(new_status)
            except ValueError as exc:
                raise self._reject(op, InvalidStatus(str(exc), {"status": new_status})) from None
            if not self._scale.is_forward(state.current_status, status):
                raise self._reject(
                    op,
                    InvalidProgression(details={
                        "current": state.current_status,
                        "requested": status,
                    }),
                )

            payload = {
                "product_id": product_id,
                "status":     status,
                "location":   location,
                "actor":      caller,
                "timestamp":  self._now(),
            }
            record  = self._commit(RecordType.UPDATE_STATUS, payload)
            product = self._apply_status(payload)
            self._queue(
                EventType.STATUS_UPDATED,
                {
                    "product_id": product_id,
                    "status":     status,
                    "location":   location,
                    "updated_by": caller,
                },
                payload["timestamp"],
                record,
            )
        self._flush_events()
        return product

    def transfer_ownership(self, caller: str, product_id: int, new_owner: str) -> Product:
        """Hand a product to another authorized participant. Owner only."""
        op = "transfer_ownership"
        with self._rw.write():
            state = self._products.get(product_id) if _valid_product_id(product_id) else None
            if state is None:
                raise self._reject(op, ProductNotFound(details={"product_id": product_id}))
            if caller != state.current_owner:
                raise self._reject(op, NotCurrentOwner(details={"product_id": product_id}))
            if not self._authorized.get(new_owner, False):
                raise self._reject(op, NewOwnerNotAuthorized(details={"new_owner": new_owner}))
            if new_owner == caller:
                raise self._reject(op, SelfTransfer())

            payload = {
                "product_id":     product_id,
                "previous_owner": caller,
                "new_owner":      new_owner,
                "timestamp":      self._now(),
            }
            record  = self._commit(RecordType.TRANSFER_OWNERSHIP, payload)
            product = self._apply_transfer(payload)
            self._queue(
                EventType.OWNERSHIP_TRANSFERRED,
                {
                    "product_id":     product_id,
                    "previous_owner": caller,
                    "new_owner":      new_owner,
                },
                payload["timestamp"],
                record,
            )
        self._flush_events()
        return product

    # ── Products: reads ───────────────────────────────────────

    def get_product(self, product_id: int) -> Product:
        with self._rw.read():
            return self._state(product_id).snapshot()

    def get_product_status(self, product_id: int) -> int:
        with self._rw.read():
            return self._state(product_id).current_status

    def get_current_owner(self, product_id: int) -> str:
        with self._rw.read():
            return self._state(product_id).current_owner

    def get_history_count(self, product_id: int) -> int:
        with self._rw.read():
            self._state(product_id)
            return len(self._history[product_id])

    def get_product_history(self, product_id: int) -> List[StatusHistoryEntry]:
        """All status entries, oldest first."""
        with self._rw.read():
            self._state(product_id)
            return list(self._history[product_id])

    def verify_product(self, product_id) -> ProductVerification:
        """(exists, name, status). Unknown ids give (False, "", 0); never raises."""
        with self._rw.read():
            state = self._products.get(product_id) if _valid_product_id(product_id) else None
            if state is None:
                return ProductVerification(False, "", 0)
            return ProductVerification(True, state.product_name, state.current_status)

    def total_products(self) -> int:
        """Registrations ever accepted. Never decreases."""
        with self._rw.read():
            return self._total

    def list_products(self) -> List[Product]:
        """Snapshots of every product, ordered by product id."""
        with self._rw.read():
            return [self._products[pid].snapshot() for pid in sorted(self._products)]

    def get_stats(self) -> Dict[str, Any]:
        with self._rw.read():
            by_stage = {name: 0 for name in self._scale.names}
            for state in self._products.values():
                by_stage[self._scale.name_of(state.current_status)] += 1
            return {
                "admin":          self._admin,
                "total_products": self._total,
                "participants":   sum(1 for ok in self._authorized.values() if ok),
                "by_stage":       by_stage,
                "journal_records": len(self._journal) if self._journal is not None else None,
            }

    # ── Apply (shared by live operations and replay) ──────────

    def _apply(self, record_type: str, payload: Dict[str, Any]) -> None:
        appliers = {
            RecordType.AUTHORIZE_PARTICIPANT: self._apply_authorize,
            RecordType.REVOKE_PARTICIPANT:    self._apply_revoke,
            RecordType.REGISTER_PRODUCT:      self._apply_register,
            RecordType.UPDATE_STATUS:         self._apply_status,
            RecordType.TRANSFER_OWNERSHIP:    self._apply_transfer,
        }
        try:
            appliers[record_type](payload)
        except KeyError as exc:
            raise IntegrityError(
                f"Cannot replay journal record: {exc}",
                {"record_type": record_type},
            ) from exc

    def _apply_authorize(self, payload: Dict[str, Any]) -> None:
        self._authorized[payload["participant"]] = True

    def _apply_revoke(self, payload: Dict[str, Any]) -> None:
        self._authorized[payload["participant"]] = False

    def _apply_register(self, payload: Dict[str, Any]) -> Product:
        pid   = payload["product_id"]
        state = _ProductState(
            product_id=        pid,
            product_name=      payload["product_name"],
            manufacturer_name= payload["manufacturer_name"],
            current_status=    self._scale.initial,
            current_owner=     payload["actor"],
            registered_by=     payload["actor"],
            registered_at=     payload["timestamp"],
        )
        self._products[pid] = state
        self._history[pid]  = [
            StatusHistoryEntry(
                status=    self._scale.initial,
                location=  payload["location"],
                timestamp= payload["timestamp"],
                actor=     payload["actor"],
            )
        ]
        self._total += 1
        return state.snapshot()

    def _apply_status(self, payload: Dict[str, Any]) -> Product:
        state = self._products[payload["product_id"]]
        state.current_status = payload["status"]
        self._history[state.product_id].append(
            StatusHistoryEntry(
                status=    payload["status"],
                location=  payload["location"],
                timestamp= payload["timestamp"],
                actor=     payload["actor"],
            )
        )
        return state.snapshot()

    def _apply_transfer(self, payload: Dict[str, Any]) -> Product:
        state = self._products[payload["product_id"]]
        state.current_owner = payload["new_owner"]
        return state.snapshot()

    # ── Internal ──────────────────────────────────────────────

    def _genesis_payload(self) -> Dict[str, Any]:
        return {
            "admin":    self._admin,
            "statuses": list(self._scale.names),
            "require_owner_for_status": self._require_owner_for_status,
        }

    def _now(self) -> str:
        ts = self._clock()
        if not is_ledger_timestamp(ts):
            raise ValueError(
                f"Clock returned {ts!r}; expected YYYY-MM-DDTHH:MM:SS.mmmZ"
            )
        return ts

    def _state(self, product_id) -> _ProductState:
        state = self._products.get(product_id) if _valid_product_id(product_id) else None
        if state is None:
            raise ProductNotFound(details={"product_id": product_id})
        return state

    def _commit(self, record_type: str, payload: Dict[str, Any]) -> Optional[JournalRecord]:
        if self._journal is None:
            return None
        return self._journal.commit(record_type, payload, timestamp=payload["timestamp"])

    def _reject(self, op: str, exc: LedgerRejection) -> LedgerRejection:
        logger.debug("%s rejected: %s", op, exc)
        return exc

    def _queue(
        self,
        event_type: str,
        args:       Dict[str, Any],
        timestamp:  str,
        record:     Optional[JournalRecord],
    ) -> None:
        logger.debug(
            "%s %s", event_type, " ".join(f"{k}={v}" for k, v in args.items())
        )
        self._outbox.append(LedgerEvent(
            event_type= event_type,
            args=       args,
            timestamp=  timestamp,
            sequence=   record.sequence if record is not None else None,
        ))

    def _flush_events(self) -> None:
        """
        Publish queued events in commit order.

        A failing sink is logged; the mutation it reports is already
        committed and stays committed.
        """
        with self._publish_lock:
            while self._outbox:
                event = self._outbox.popleft()
                try:
                    self._sink.publish(event)
                except Exception:
                    logger.exception(
                        "event sink failed on %s (sequence=%s)",
                        event.event_type, event.sequence,
                    )

    def __repr__(self) -> str:
        return (
            f"ProductLedger(admin={self._admin!r}, "
            f"products={self._total}, stages={len(self._scale)})"
        )


# ─────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────

def _as_scale(statuses) -> StatusScale:
    if statuses is None:
        return StatusScale.default()
    if isinstance(statuses, StatusScale):
        return statuses
    return StatusScale(statuses)


def _valid_product_id(product_id) -> bool:
    return (
        isinstance(product_id, int)
        and not isinstance(product_id, bool)
        and product_id > 0
    )


def _require_identity(identity, name: str) -> None:
    if not isinstance(identity, str) or not identity:
        raise ValueError(f"{name} must be a non-empty identity string")


def _verify_records(
    records:        List[JournalRecord],
    trusted_signer: Optional[str] = None,
) -> None:
    """
    Raise IntegrityError unless records form a valid journal from genesis.

    Every record must be signed by the genesis signer, and the genesis
    signer must be trusted_signer when one is given.
    """
    signer = records[0].signer_public_key
    if trusted_signer is not None and signer != trusted_signer:
        raise IntegrityError(
            "Journal genesis is signed by an untrusted key",
            {"signer": signer, "trusted": trusted_signer},
        )

    prev = None
    for i, record in enumerate(records):
        if record.sequence != i:
            raise IntegrityError(
                f"Sequence gap at position {i}",
                {"expected": i, "got": record.sequence},
            )
        if not record.verify_chain(prev):
            raise IntegrityError(
                f"Chain break at sequence {record.sequence}",
                {"record_id": record.record_id},
            )
        if record.signer_public_key != signer:
            raise IntegrityError(
                f"Signer mismatch at sequence {record.sequence}",
                {"record_id": record.record_id, "signer": record.signer_public_key},
            )
        if not record.verify_signature():
            raise IntegrityError(
                f"Invalid signature at sequence {record.sequence}",
                {"record_id": record.record_id},
            )
        prev = record

    if records[0].record_type != RecordType.GENESIS:
        raise IntegrityError(
            "Journal does not start with a genesis record",
            {"record_type": records[0].record_type},
        )
    for record in records[1:]:
        if record.record_type == RecordType.GENESIS:
            raise IntegrityError(
                f"Second genesis record at sequence {record.sequence}",
                {"record_id": record.record_id},
            )
