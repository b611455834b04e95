"""
supplyledger/core/audit.py

Journal audit — offline verification of a JSONL journal file.

Checks, in one sequential pass:
    1. Schema    → record.validate_schema()       (at load, fail fast)
    2. Sequence  → record.sequence == position
    3. Chain     → record.verify_chain(prev)
    4. Nonce     → no two records share a nonce
    5. Genesis   → exactly one genesis, at sequence 0
    6. Signer    → every record signed by the genesis key (or the
                   trusted key, when one is given)
    7. Signature → record.verify_signature()

Unlike ProductLedger.open(), the audit does not stop at the first
violation: it reports every one, which is what an auditor wants.

    audit = JournalAudit()
    audit.load(Path(".supplyledger/journal.jsonl"))
    summary = audit.verify()
    audit.export_json(Path("audit.json"))
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set

from supplyledger.core.exceptions import JournalError
from supplyledger.core.journal import JournalRecord, RecordType, load_records


logger = logging.getLogger(__name__)


@dataclass
class Violation:
    """A single detected violation in the journal."""
    at_sequence:    int
    record_id:      str
    violation_type: str   # "sequence_gap" | "chain_break" | "duplicate_nonce" | "genesis" | "signer_mismatch" | "invalid_signature"
    detail:         str


@dataclass
class AuditSummary:
    """Aggregate result of a full journal verification pass."""
    total_records:      int
    journal_valid:      bool
    violations:         List[Violation]
    valid_signatures:   int
    invalid_signatures: int
    record_type_counts: Dict[str, int]
    signers_seen:       List[str]
    admin:              Optional[str]
    products:           int
    first_timestamp:    Optional[str]
    last_timestamp:     Optional[str]

    def to_dict(self) -> Dict:
        return {
            "total_records":      self.total_records,
            "journal_valid":      self.journal_valid,
            "valid_signatures":   self.valid_signatures,
            "invalid_signatures": self.invalid_signatures,
            "record_type_counts": self.record_type_counts,
            "signers_seen":       self.signers_seen,
            "admin":              self.admin,
            "products":           self.products,
            "first_timestamp":    self.first_timestamp,
            "last_timestamp":     self.last_timestamp,
            "violations": [
                {
                    "at_sequence":    v.at_sequence,
                    "record_id":      v.record_id,
                    "violation_type": v.violation_type,
                    "detail":         v.detail,
                }
                for v in self.violations
            ],
        }


class JournalAudit:

    def __init__(self, trusted_signer: Optional[str] = None) -> None:
        self.trusted_signer = trusted_signer
        self.records:      List[JournalRecord] = []
        self.violations:   List[Violation]     = []
        self._journal_path: Optional[Path]     = None

    # ── Load ──────────────────────────────────────────────────

    def load(self, journal_path: Path) -> None:
        """
        Load a journal file.

        Raises:
            FileNotFoundError — journal file does not exist
            JournalError      — malformed line or schema violation
        """
        journal_path = Path(journal_path)
        if not journal_path.exists():
            raise FileNotFoundError(f"Journal not found: {journal_path}")

        self._journal_path = journal_path
        self.records       = load_records(journal_path)
        self.violations    = []
        logger.info("loaded %d journal records from %s", len(self.records), journal_path)

    def load_records(self, records: List[JournalRecord]) -> None:
        """Audit records already in memory (e.g. Journal.records())."""
        self._journal_path = None
        self.records       = list(records)
        self.violations    = []

    # ── Verify ────────────────────────────────────────────────

    def verify(self) -> AuditSummary:
        self.violations = []
        if not self.records:
            return self._empty_summary()

        violations:  List[Violation] = []
        seen_nonces: Set[str]        = set()
        signer       = self.trusted_signer or self.records[0].signer_public_key
        valid_sigs   = 0
        invalid_sigs = 0

        for i, record in enumerate(self.records):
            prev = self.records[i - 1] if i > 0 else None

            if record.sequence != i:
                violations.append(Violation(
                    at_sequence=    i,
                    record_id=      record.record_id,
                    violation_type= "sequence_gap",
                    detail=         f"Expected sequence {i}, got {record.sequence}",
                ))

            if not record.verify_chain(prev):
                expected = JournalRecord.causal_hash_of(prev)
                violations.append(Violation(
                    at_sequence=    record.sequence,
                    record_id=      record.record_id,
                    violation_type= "chain_break",
                    detail=(
                        f"causal_hash mismatch: expected ...{expected[-12:]}, "
                        f"got ...{record.causal_hash[-12:]}"
                    ),
                ))

            if record.nonce in seen_nonces:
                violations.append(Violation(
                    at_sequence=    record.sequence,
                    record_id=      record.record_id,
                    violation_type= "duplicate_nonce",
                    detail=         f"Nonce '{record.nonce}' already used",
                ))
            seen_nonces.add(record.nonce)

            is_genesis = record.record_type == RecordType.GENESIS
            if is_genesis != (i == 0):
                violations.append(Violation(
                    at_sequence=    record.sequence,
                    record_id=      record.record_id,
                    violation_type= "genesis",
                    detail=(
                        "Genesis record must be first and only first"
                        if is_genesis else
                        f"First record is '{record.record_type}', not genesis"
                    ),
                ))

            if record.signer_public_key != signer:
                violations.append(Violation(
                    at_sequence=    record.sequence,
                    record_id=      record.record_id,
                    violation_type= "signer_mismatch",
                    detail=(
                        f"Signed by {record.signer_public_key[:16]}..., "
                        f"expected {signer[:16]}..."
                    ),
                ))

            if record.verify_signature():
                valid_sigs += 1
            else:
                invalid_sigs += 1
                violations.append(Violation(
                    at_sequence=    record.sequence,
                    record_id=      record.record_id,
                    violation_type= "invalid_signature",
                    detail=(
                        f"Signature invalid (signer: {record.signer_public_key[:16]}...)"
                    ),
                ))

        self.violations = violations

        counts: Dict[str, int] = defaultdict(int)
        for record in self.records:
            counts[record.record_type] += 1

        first = self.records[0]
        admin = (
            first.payload.get("admin")
            if first.record_type == RecordType.GENESIS else None
        )

        return AuditSummary(
            total_records=      len(self.records),
            journal_valid=      not violations,
            violations=         list(violations),
            valid_signatures=   valid_sigs,
            invalid_signatures= invalid_sigs,
            record_type_counts= dict(counts),
            signers_seen=       sorted({r.signer_public_key for r in self.records}),
            admin=              admin,
            products=           counts.get(RecordType.REGISTER_PRODUCT, 0),
            first_timestamp=    first.timestamp,
            last_timestamp=     self.records[-1].timestamp,
        )

    # ── Export ────────────────────────────────────────────────

    def export_json(self, output_path: Path) -> None:
        """
        Write the audit summary as a JSON report. Parent directories are
        created. Raises JournalError if nothing has been loaded.
        """
        if not self.records:
            raise JournalError("No journal records loaded. Call load() first.")

        summary     = self.verify()
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        report = {
            "supplyledger_audit": {
                "journal": str(self._journal_path or "in-memory"),
                **summary.to_dict(),
            }
        }
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2)

    # ── Internal ──────────────────────────────────────────────

    def _empty_summary(self) -> AuditSummary:
        return AuditSummary(
            total_records=      0,
            journal_valid=      True,
            violations=         [],
            valid_signatures=   0,
            invalid_signatures= 0,
            record_type_counts= {},
            signers_seen=       [],
            admin=              None,
            products=           0,
            first_timestamp=    None,
            last_timestamp=     None,
        )
