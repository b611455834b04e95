"""
supplyledger/core/journal.py

Durable mutation journal for the product ledger.

Every mutation the ledger accepts is committed here BEFORE it is applied
in memory. On restart the ledger is rebuilt by replaying the journal from
its genesis record.

Record contracts:

    Signing  bytes_signed = canonicalize(record.to_signing_dict())
             algorithm    = Ed25519, base64url without padding

    Chain    causal_hash  = SHA-256(canonicalize(prev.to_signing_dict()))
             first record = GENESIS_HASH ("0" * 64)

    Nonce    32 hex chars of random entropy, unique per journal.
             sequence is ordering; nonce is uniqueness.

commit() MUST, in this order:
  1. Acquire the journal lock
  2. Build the record (sequence, causal_hash from the last record)
  3. Sign it
  4. Persist it (no-op for the in-memory Journal)
  5. Advance sequence / last record only after the write succeeded
"""

import json
import logging
import os
import secrets
import threading
import uuid
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from supplyledger.core.canonical import canonical_hash, canonicalize
from supplyledger.core.crypto import Ed25519KeyManager, PUBLIC_KEY_HEX_LENGTH
from supplyledger.core.exceptions import JournalError
from supplyledger.core.time import is_ledger_timestamp, ledger_timestamp


logger = logging.getLogger(__name__)


JOURNAL_VERSION = "1.0"
GENESIS_HASH    = "0" * 64

_NONCE_HEX_LENGTH = 32


class RecordType:
    """
    The mutations a journal can hold. One per ledger operation, plus the
    genesis record that fixes the admin and the status scale.
    """
    GENESIS               = "genesis"
    AUTHORIZE_PARTICIPANT = "authorize_participant"
    REVOKE_PARTICIPANT    = "revoke_participant"
    REGISTER_PRODUCT      = "register_product"
    UPDATE_STATUS         = "update_status"
    TRANSFER_OWNERSHIP    = "transfer_ownership"


VALID_RECORD_TYPES = frozenset({
    RecordType.GENESIS,
    RecordType.AUTHORIZE_PARTICIPANT,
    RecordType.REVOKE_PARTICIPANT,
    RecordType.REGISTER_PRODUCT,
    RecordType.UPDATE_STATUS,
    RecordType.TRANSFER_OWNERSHIP,
})


@dataclass
class SchemaValidationResult:
    """
    Returned (not raised) by JournalRecord.validate_schema().
    bool(result) is True iff valid.
    """
    valid:  bool
    errors: List[str]

    def __bool__(self) -> bool:
        return self.valid


def _is_hex(value: Any, length: int) -> bool:
    if not isinstance(value, str) or len(value) != length:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


# ─────────────────────────────────────────────────────────────
# JournalRecord
# ─────────────────────────────────────────────────────────────

@dataclass
class JournalRecord:
    """One committed ledger mutation."""

    journal_version:   str
    record_id:         str
    record_type:       str
    signer_public_key: str
    sequence:          int
    nonce:             str
    timestamp:         str
    causal_hash:       str
    payload:           Dict[str, Any]
    signature:         Optional[str] = None

    @classmethod
    def create(
        cls,
        record_type:       str,
        signer_public_key: str,
        sequence:          int,
        payload:           Dict[str, Any],
        prev:              Optional["JournalRecord"] = None,
        timestamp:         Optional[str] = None,
    ) -> "JournalRecord":
        """
        Build an unsigned record chained to prev.
        Raises ValueError / TypeError on an unknown record_type, a
        non-dict payload or a negative sequence.
        """
        if record_type not in VALID_RECORD_TYPES:
            raise ValueError(
                f"Invalid record_type '{record_type}'. "
                f"Valid: {sorted(VALID_RECORD_TYPES)}"
            )
        if not isinstance(payload, dict):
            raise TypeError(
                f"payload must be dict, got {type(payload).__name__}"
            )
        if not isinstance(sequence, int) or sequence < 0:
            raise ValueError(
                f"sequence must be non-negative int, got {sequence!r}"
            )

        return cls(
            journal_version=   JOURNAL_VERSION,
            record_id=         f"jr-{uuid.uuid4()}",
            record_type=       record_type,
            signer_public_key= signer_public_key,
            sequence=          sequence,
            nonce=             secrets.token_hex(_NONCE_HEX_LENGTH // 2),
            timestamp=         timestamp or ledger_timestamp(),
            causal_hash=       cls.causal_hash_of(prev),
            payload=           payload,
            signature=         None,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JournalRecord":
        """
        Deserialize a JSONL line. Trusts the data; callers run
        validate_schema() before relying on it. Raises KeyError on a
        missing field.
        """
        return cls(
            journal_version=   data["journal_version"],
            record_id=         data["record_id"],
            record_type=       data["record_type"],
            signer_public_key= data["signer_public_key"],
            sequence=          data["sequence"],
            nonce=             data["nonce"],
            timestamp=         data["timestamp"],
            causal_hash=       data["causal_hash"],
            payload=           data.get("payload", {}),
            signature=         data.get("signature"),
        )

    # ── Serialization ─────────────────────────────────────────

    def to_signing_dict(self) -> Dict[str, Any]:
        """Every field except the signature. Signed, and hashed into the next record."""
        return {
            "causal_hash":       self.causal_hash,
            "journal_version":   self.journal_version,
            "nonce":             self.nonce,
            "payload":           self.payload,
            "record_id":         self.record_id,
            "record_type":       self.record_type,
            "sequence":          self.sequence,
            "signer_public_key": self.signer_public_key,
            "timestamp":         self.timestamp,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Full serialization including signature. JSONL persistence only."""
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    # ── Schema ────────────────────────────────────────────────

    def validate_schema(self) -> SchemaValidationResult:
        errors: List[str] = []

        if self.journal_version != JOURNAL_VERSION:
            errors.append(
                f"journal_version: expected '{JOURNAL_VERSION}', got '{self.journal_version}'"
            )
        if self.record_type not in VALID_RECORD_TYPES:
            errors.append(f"record_type '{self.record_type}' is not a journal record type")
        if not isinstance(self.record_id, str) or not self.record_id.startswith("jr-"):
            errors.append(
                f"record_id must be a string starting with 'jr-', got {self.record_id!r}"
            )
        if not _is_hex(self.signer_public_key, PUBLIC_KEY_HEX_LENGTH):
            errors.append(
                f"signer_public_key must be {PUBLIC_KEY_HEX_LENGTH} hex chars"
            )
        if not isinstance(self.sequence, int) or self.sequence < 0:
            errors.append(f"sequence must be non-negative int, got {self.sequence!r}")
        if not _is_hex(self.nonce, _NONCE_HEX_LENGTH):
            errors.append(f"nonce must be {_NONCE_HEX_LENGTH} hex chars")
        if not is_ledger_timestamp(self.timestamp):
            errors.append(
                f"timestamp {self.timestamp!r} is not YYYY-MM-DDTHH:MM:SS.mmmZ"
            )
        if not _is_hex(self.causal_hash, 64):
            errors.append("causal_hash must be 64 hex chars")
        if not isinstance(self.payload, dict):
            errors.append(f"payload must be dict, got {type(self.payload).__name__}")

        return SchemaValidationResult(valid=not errors, errors=errors)

    # ── Chain / signature ─────────────────────────────────────

    @staticmethod
    def causal_hash_of(prev: Optional["JournalRecord"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_signing_dict())

    def sign(self, key_manager: Ed25519KeyManager) -> "JournalRecord":
        """Sign in place. Returns self."""
        self.signature = key_manager.sign(canonicalize(self.to_signing_dict()))
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return Ed25519KeyManager.verify_detached(
            canonicalize(self.to_signing_dict()),
            self.signature,
            self.signer_public_key,
        )

    def verify_chain(self, prev: Optional["JournalRecord"]) -> bool:
        return self.causal_hash == JournalRecord.causal_hash_of(prev)


# ─────────────────────────────────────────────────────────────
# Journal (in-memory)
# ─────────────────────────────────────────────────────────────

class Journal:
    """
    In-memory journal. Holds records for the life of the process.

    Subclasses persist records by overriding _persist(); the sequencing,
    chaining and signing logic lives only here.
    """

    def __init__(self, key_manager: Optional[Ed25519KeyManager] = None) -> None:
        self.key_manager = key_manager or Ed25519KeyManager.generate()

        self._lock:     threading.Lock       = threading.Lock()
        self._records:  List[JournalRecord]  = []
        self._sequence: int                  = 0
        self._last:     Optional[JournalRecord] = None

    # ── Public API ────────────────────────────────────────────

    def commit(
        self,
        record_type: str,
        payload:     Dict[str, Any],
        timestamp:   Optional[str] = None,
    ) -> JournalRecord:
        """
        Commit one signed mutation record.

        Raises JournalError if the record cannot be persisted. The journal
        does not advance in that case.
        """
        with self._lock:
            record = JournalRecord.create(
                record_type=       record_type,
                signer_public_key= self.key_manager.public_key_hex,
                sequence=          self._sequence,
                payload=           payload,
                prev=              self._last,
                timestamp=         timestamp,
            ).sign(self.key_manager)

            self._persist(record)

            self._records.append(record)
            self._sequence += 1
            self._last      = record

            logger.debug(
                "journal commit seq=%d type=%s", record.sequence, record.record_type
            )
            return record

    def records(self) -> List[JournalRecord]:
        """Snapshot of all committed records, oldest first."""
        with self._lock:
            return list(self._records)

    def __iter__(self) -> Iterator[JournalRecord]:
        return iter(self.records())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def last_record(self) -> Optional[JournalRecord]:
        return self._last

    def verify_chain(self) -> bool:
        """True if every record is in sequence, chained and validly signed."""
        prev = None
        for i, record in enumerate(self.records()):
            if record.sequence != i:
                return False
            if not record.verify_chain(prev):
                return False
            if not record.verify_signature():
                return False
            prev = record
        return True

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "records":          len(self._records),
                "next_sequence":    self._sequence,
                "last_record_id":   self._last.record_id if self._last else None,
                "journal_version":  JOURNAL_VERSION,
                "signer":           self.key_manager.public_key_hex,
            }

    # ── Internal ──────────────────────────────────────────────

    def _persist(self, record: JournalRecord) -> None:
        """Durably store one record. In-memory journals keep nothing extra."""
        return None

    def _restore(self, records: List[JournalRecord]) -> None:
        self._records  = list(records)
        self._sequence = len(records)
        self._last     = records[-1] if records else None


# ─────────────────────────────────────────────────────────────
# FileJournal (JSONL on disk)
# ─────────────────────────────────────────────────────────────

class FileJournal(Journal):
    """
    Append-only JSONL journal at <journal_dir>/journal.jsonl.

    Existing records are loaded on construction. A corrupt trailing line
    (torn write) is skipped with a RuntimeWarning; corruption anywhere
    else raises JournalError.

    A write that fails partway is cut back to the last committed byte
    before the error is raised, so the next record always starts on a
    fresh line.

    One process owns a journal file. There is no inter-process lock:
    two processes appending to the same file will reuse sequence numbers
    and the journal will then fail verification on open().
    """

    FILENAME = "journal.jsonl"

    def __init__(
        self,
        journal_dir: str = ".supplyledger",
        key_manager: Optional[Ed25519KeyManager] = None,
    ) -> None:
        super().__init__(key_manager)
        self._journal_dir = Path(journal_dir)
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self.path = self._journal_dir / self.FILENAME

        self._restore(load_records(self.path))
        self._drop_torn_tail()
        self._committed_size = self.path.stat().st_size

    def _drop_torn_tail(self) -> None:
        """Rewrite the file if load_records() skipped a torn last line."""
        with open(self.path, "a+b") as f:
            f.seek(0)
            content = f.read()
        line_count = sum(1 for raw in content.splitlines() if raw.strip())
        if line_count == len(self._records) and (not content or content.endswith(b"\n")):
            return
        tmp_path = self.path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            for record in self._records:
                f.write(json.dumps(record.to_dict()) + "\n")
        tmp_path.replace(self.path)
        logger.warning(
            "journal %s: truncated torn tail, %d records kept",
            self.path, len(self._records),
        )

    def _persist(self, record: JournalRecord) -> None:
        data = (json.dumps(record.to_dict()) + "\n").encode("utf-8")
        try:
            with open(self.path, "ab") as f:
                size = f.seek(0, os.SEEK_END)
                if size != self._committed_size:
                    logger.warning(
                        "journal %s: discarding %d bytes of an earlier failed write",
                        self.path, size - self._committed_size,
                    )
                    f.truncate(self._committed_size)
                    f.seek(self._committed_size)
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            self._discard_partial_write()
            raise JournalError(
                f"Journal write failed: {exc}",
                {"path": str(self.path), "sequence": record.sequence},
            ) from exc
        self._committed_size += len(data)

    def _discard_partial_write(self) -> None:
        try:
            with open(self.path, "r+b") as f:
                f.truncate(self._committed_size)
        except OSError:
            # The next _persist() retries the truncation.
            logger.exception("journal %s: could not discard partial write", self.path)

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats["journal_file"] = str(self.path)
        return stats


def load_records(path: Path) -> List[JournalRecord]:
    """
    Read a JSONL journal. Missing file -> [].

    A malformed LAST line is treated as a torn write: it is dropped with
    a RuntimeWarning. A malformed line followed by valid lines raises
    JournalError.
    """
    path = Path(path)
    if not path.exists():
        return []

    with open(path, "r", encoding="utf-8") as f:
        lines = [(n, raw.strip()) for n, raw in enumerate(f, 1) if raw.strip()]

    records: List[JournalRecord] = []
    for idx, (line_num, raw) in enumerate(lines):
        try:
            record = JournalRecord.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            if idx == len(lines) - 1:
                warnings.warn(
                    f"Journal {path}: dropping unreadable last line {line_num} ({exc}). "
                    "Likely a torn write.",
                    RuntimeWarning,
                    stacklevel=2,
                )
                break
            raise JournalError(
                f"Malformed journal line {line_num}: {exc}",
                {"path": str(path)},
            ) from exc

        schema = record.validate_schema()
        if not schema:
            raise JournalError(
                f"Schema violation at journal line {line_num}: {schema.errors}",
                {"path": str(path)},
            )
        records.append(record)

    return records
