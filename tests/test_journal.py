"""
tests/test_journal.py

Journal records, the file journal, and rebuilding a ledger from it.

Laws checked here:
  - Every record is signed over its canonical signing surface
  - Every record is chained to its predecessor by causal_hash
  - A restored ledger is indistinguishable from the one that wrote the journal
  - Tampering is detected on restore, never silently applied

Run:
    pytest tests/test_journal.py -v
"""

import json
import warnings
from pathlib import Path
from typing import List

import pytest

from supplyledger import (
    ConfigError,
    Ed25519KeyManager,
    FileJournal,
    IntegrityError,
    InvalidProgression,
    Journal,
    JournalError,
    JournalRecord,
    MemoryEventSink,
    NotAuthorized,
    ProductLedger,
    ProductStatus,
    RecordType,
)
from supplyledger.core.canonical import canonical_hash
from supplyledger.core.journal import GENESIS_HASH, JOURNAL_VERSION, load_records


ADMIN        = "0xadmin"
MANUFACTURER = "0xmanufacturer"
DISTRIBUTOR  = "0xdistributor"


# ─────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def key():
    return Ed25519KeyManager.generate()


def make_record(
    key:         Ed25519KeyManager,
    sequence:    int = 0,
    record_type: str = RecordType.GENESIS,
    payload:     dict = None,
    prev:        JournalRecord = None,
) -> JournalRecord:
    return JournalRecord.create(
        record_type=       record_type,
        signer_public_key= key.public_key_hex,
        sequence=          sequence,
        payload=           payload or {"admin": ADMIN},
        prev=              prev,
    ).sign(key)


def populate(ledger: ProductLedger) -> None:
    """A short supply-chain history touching every record type."""
    ledger.authorize_participant(ADMIN, MANUFACTURER)
    ledger.authorize_participant(ADMIN, DISTRIBUTOR)
    ledger.authorize_participant(ADMIN, "0xtemp")
    ledger.revoke_participant(ADMIN, "0xtemp")
    ledger.register_product(MANUFACTURER, 1001, "Organic Coffee", "Ethiopian Farms")
    ledger.register_product(MANUFACTURER, 1002, "Green Tea", "Uji Growers", location="Kyoto")
    ledger.update_status(MANUFACTURER, 1001, ProductStatus.IN_TRANSIT, "Warehouse A")
    ledger.transfer_ownership(MANUFACTURER, 1001, DISTRIBUTOR)
    ledger.update_status(DISTRIBUTOR, 1001, ProductStatus.DELIVERED, "Cafe Central")


def observable(ledger: ProductLedger):
    return (
        ledger.admin,
        list(ledger.status_scale.names),
        ledger.participants(),
        ledger.total_products(),
        ledger.list_products(),
        {p.product_id: ledger.get_product_history(p.product_id) for p in ledger.list_products()},
    )


def read_lines(path: Path) -> List[dict]:
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def write_lines(path: Path, rows: List[dict]) -> None:
    path.write_text("".join(json.dumps(r) + "\n" for r in rows))


# ─────────────────────────────────────────────────────────────
# Records
# ─────────────────────────────────────────────────────────────

class TestJournalRecord:

    def test_signature_verifies(self, key):
        record = make_record(key)
        assert record.verify_signature()
        assert record.validate_schema().valid

    def test_payload_change_breaks_signature(self, key):
        record = make_record(key)
        record.payload = {"admin": "0xmallory"}
        assert not record.verify_signature()

    def test_sequence_change_breaks_signature(self, key):
        record = make_record(key)
        record.sequence = 5
        assert not record.verify_signature()

    def test_missing_signature_fails(self, key):
        record = JournalRecord.create(RecordType.GENESIS, key.public_key_hex, 0, {})
        assert not record.verify_signature()

    def test_first_record_chains_to_genesis_hash(self, key):
        assert make_record(key).causal_hash == GENESIS_HASH

    def test_second_record_chains_to_first(self, key):
        first  = make_record(key)
        second = make_record(key, 1, RecordType.AUTHORIZE_PARTICIPANT, {"participant": "x"}, prev=first)
        assert second.causal_hash == canonical_hash(first.to_signing_dict())
        assert second.verify_chain(first)

    def test_chain_hash_excludes_signature(self, key):
        first  = make_record(key)
        second = make_record(key, 1, RecordType.AUTHORIZE_PARTICIPANT, {"participant": "x"}, prev=first)
        first.signature = "forged"
        assert second.verify_chain(first)

    def test_unknown_record_type_rejected(self, key):
        with pytest.raises(ValueError):
            JournalRecord.create("delete_product", key.public_key_hex, 0, {})

    def test_non_dict_payload_rejected(self, key):
        with pytest.raises(TypeError):
            JournalRecord.create(RecordType.GENESIS, key.public_key_hex, 0, ["x"])

    def test_negative_sequence_rejected(self, key):
        with pytest.raises(ValueError):
            JournalRecord.create(RecordType.GENESIS, key.public_key_hex, -1, {})

    @pytest.mark.parametrize("field, value", [
        ("journal_version", "9.9"),
        ("record_type",     "mint"),
        ("record_id",       "xx-123"),
        ("nonce",           "abc"),
        ("timestamp",       "2024-03-01T12:00:00Z"),
        ("timestamp",       "2024-03-01T12:00:00.000000Z"),
        ("causal_hash",     "0" * 10),
        ("signer_public_key", "ab" * 8),
    ])
    def test_schema_violations_detected(self, key, field, value):
        record = make_record(key)
        setattr(record, field, value)
        result = record.validate_schema()
        assert not result
        assert result.errors

    def test_round_trip_through_dict(self, key):
        record = make_record(key)
        again  = JournalRecord.from_dict(json.loads(json.dumps(record.to_dict())))
        assert again == record
        assert again.verify_signature()

    def test_nonces_are_unique(self, key):
        nonces = {make_record(key).nonce for _ in range(200)}
        assert len(nonces) == 200


# ─────────────────────────────────────────────────────────────
# Journals
# ─────────────────────────────────────────────────────────────

class TestJournal:

    def test_commit_sequences_and_chains(self):
        journal = Journal()
        for i in range(5):
            record = journal.commit(RecordType.AUTHORIZE_PARTICIPANT, {"participant": f"p{i}"})
            assert record.sequence == i
        assert len(journal) == 5
        assert journal.verify_chain()
        assert journal.last_record.sequence == 4
        assert journal.get_stats()["next_sequence"] == 5
        assert journal.get_stats()["journal_version"] == JOURNAL_VERSION

    def test_ledger_commits_genesis_first(self):
        journal = Journal()
        ProductLedger(admin=ADMIN, journal=journal, statuses=["A", "B"])
        genesis = journal.records()[0]
        assert genesis.record_type == RecordType.GENESIS
        assert genesis.payload == {
            "admin":    ADMIN,
            "statuses": ["A", "B"],
            "require_owner_for_status": False,
        }

    def test_one_record_per_mutation_none_per_rejection(self):
        journal = Journal()
        ledger  = ProductLedger(admin=ADMIN, journal=journal)
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        with pytest.raises(NotAuthorized):
            ledger.authorize_participant(MANUFACTURER, DISTRIBUTOR)
        ledger.register_product(MANUFACTURER, 1, "A", "F")
        assert [r.record_type for r in journal] == [
            RecordType.GENESIS,
            RecordType.AUTHORIZE_PARTICIPANT,
            RecordType.REGISTER_PRODUCT,
        ]

    def test_write_failure_leaves_state_unchanged(self):
        class FlakyJournal(Journal):
            fail = False

            def _persist(self, record):
                if self.fail:
                    raise JournalError("disk full")

        journal = FlakyJournal()
        sink    = MemoryEventSink()
        ledger  = ProductLedger(admin=ADMIN, journal=journal, sink=sink)
        journal.fail = True
        with pytest.raises(JournalError):
            ledger.register_product(ADMIN, 1, "A", "F")
        assert ledger.total_products() == 0
        assert ledger.verify_product(1).exists is False
        assert len(journal) == 1
        assert sink.events == []

        journal.fail = False
        ledger.register_product(ADMIN, 1, "A", "F")
        assert journal.verify_chain()

    def test_constructor_refuses_used_journal(self):
        journal = Journal()
        ProductLedger(admin=ADMIN, journal=journal)
        with pytest.raises(JournalError):
            ProductLedger(admin=ADMIN, journal=journal)


class TestFileJournal:

    def test_records_persist_as_jsonl(self, tmp_path, key):
        journal = FileJournal(str(tmp_path), key_manager=key)
        ledger  = ProductLedger(admin=ADMIN, journal=journal)
        populate(ledger)
        rows = read_lines(tmp_path / "journal.jsonl")
        assert len(rows) == len(journal) == 10
        assert rows[0]["record_type"] == "genesis"
        assert all(r["signer_public_key"] == key.public_key_hex for r in rows)

    def test_reopen_restores_sequence(self, tmp_path, key):
        ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        reopened = FileJournal(str(tmp_path), key_manager=key)
        assert len(reopened) == 1
        record = reopened.commit(RecordType.AUTHORIZE_PARTICIPANT, {"participant": "x", "timestamp": "t"})
        assert record.sequence == 1
        assert reopened.verify_chain()

    def test_torn_tail_dropped_with_warning(self, tmp_path, key):
        ledger = ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        populate(ledger)
        path = tmp_path / "journal.jsonl"
        with open(path, "a", encoding="utf-8") as f:
            f.write('{"journal_version": "1.0", "record_id": "jr-')

        with pytest.warns(RuntimeWarning, match="torn write"):
            journal = FileJournal(str(tmp_path), key_manager=key)
        assert len(journal) == 10
        assert len(read_lines(path)) == 10

        restored = ProductLedger.open(journal)
        assert observable(restored) == observable(ledger)

    def test_partial_write_does_not_swallow_next_record(self, tmp_path, key):
        class PartialWriteJournal(FileJournal):
            fail = False

            def _persist(self, record):
                if self.fail:
                    line = json.dumps(record.to_dict()) + "\n"
                    with open(self.path, "a", encoding="utf-8") as f:
                        f.write(line[:40])
                    raise JournalError("disk full")
                super()._persist(record)

        journal = PartialWriteJournal(str(tmp_path), key_manager=key)
        ledger  = ProductLedger(admin=ADMIN, journal=journal)
        journal.fail = True
        with pytest.raises(JournalError):
            ledger.register_product(ADMIN, 1, "A", "F")
        journal.fail = False
        ledger.register_product(ADMIN, 2, "B", "F")
        ledger.register_product(ADMIN, 3, "C", "F")

        assert len(read_lines(tmp_path / "journal.jsonl")) == 3
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            restored = ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))
        assert restored.verify_product(1).exists is False
        assert restored.verify_product(2).exists is True
        assert restored.verify_product(3).exists is True

    def test_failed_write_is_cut_back(self, tmp_path, key, monkeypatch):
        ledger = ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        path   = tmp_path / "journal.jsonl"
        before = path.read_bytes()

        def no_space(fd):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr("supplyledger.core.journal.os.fsync", no_space)
        with pytest.raises(JournalError, match="Journal write failed"):
            ledger.register_product(ADMIN, 1, "A", "F")
        assert path.read_bytes() == before

        monkeypatch.undo()
        ledger.register_product(ADMIN, 2, "B", "F")
        assert [r["payload"].get("product_id") for r in read_lines(path)] == [None, 2]

    def test_missing_final_newline_repaired(self, tmp_path, key):
        ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        path = tmp_path / "journal.jsonl"
        path.write_text(path.read_text().rstrip("\n"))

        journal = FileJournal(str(tmp_path), key_manager=key)
        ledger  = ProductLedger.open(journal)
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        assert len(read_lines(path)) == 2
        assert ProductLedger.open(FileJournal(str(tmp_path), key_manager=key)).is_authorized(MANUFACTURER)

    def test_malformed_middle_line_raises(self, tmp_path, key):
        ledger = ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        ledger.authorize_participant(ADMIN, MANUFACTURER)
        path  = tmp_path / "journal.jsonl"
        lines = path.read_text().splitlines()
        path.write_text(lines[0] + "\n{not json\n" + lines[1] + "\n")
        with pytest.raises(JournalError):
            FileJournal(str(tmp_path), key_manager=key)

    def test_schema_violation_raises(self, tmp_path, key):
        ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        path = tmp_path / "journal.jsonl"
        rows = read_lines(path)
        rows[0]["nonce"] = "short"
        write_lines(path, rows)
        with pytest.raises(JournalError):
            load_records(path)

    def test_missing_file_is_empty(self, tmp_path):
        assert load_records(tmp_path / "nope.jsonl") == []


# ─────────────────────────────────────────────────────────────
# Restore
# ─────────────────────────────────────────────────────────────

class TestLedgerRestore:

    def test_restore_reproduces_state(self, tmp_path, key):
        original = ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key))
        populate(original)

        restored = ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))
        assert observable(restored) == observable(original)
        assert not restored.is_authorized("0xtemp")

    def test_restore_with_a_different_key_rejected(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        other = Ed25519KeyManager.generate()
        with pytest.raises(IntegrityError, match="untrusted key"):
            ProductLedger.open(FileJournal(str(tmp_path), key_manager=other))

    def test_restore_publishes_no_events(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        sink = MemoryEventSink()
        ProductLedger.open(FileJournal(str(tmp_path), key_manager=key), sink=sink)
        assert sink.events == []

    def test_restored_ledger_continues_journal(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        journal  = FileJournal(str(tmp_path), key_manager=key)
        restored = ProductLedger.open(journal)
        with pytest.raises(InvalidProgression):
            restored.update_status(DISTRIBUTOR, 1001, ProductStatus.IN_TRANSIT, "Back")
        restored.update_status(MANUFACTURER, 1002, "Delivered", "Tokyo")
        assert journal.verify_chain()
        again = ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))
        assert again.get_product_status(1002) == ProductStatus.DELIVERED

    def test_restore_keeps_custom_scale_and_owner_rule(self):
        journal = Journal()
        ProductLedger(
            admin=    ADMIN,
            journal=  journal,
            statuses= ["Made", "Checked", "Shipped"],
            require_owner_for_status=True,
        )
        restored = ProductLedger.open(journal)
        assert list(restored.status_scale.names) == ["Made", "Checked", "Shipped"]
        assert restored.require_owner_for_status is True

    def test_empty_journal_needs_admin(self):
        with pytest.raises(ConfigError):
            ProductLedger.open(Journal())

    def test_empty_journal_gets_genesis(self):
        journal = Journal()
        ledger  = ProductLedger.open(journal, admin=ADMIN)
        assert ledger.admin == ADMIN
        assert journal.records()[0].record_type == RecordType.GENESIS

    def test_admin_mismatch_rejected(self):
        journal = Journal()
        ProductLedger(admin=ADMIN, journal=journal)
        with pytest.raises(ConfigError):
            ProductLedger.open(journal, admin="0xsomeone-else")

    def test_scale_mismatch_rejected(self):
        journal = Journal()
        ProductLedger(admin=ADMIN, journal=journal)
        with pytest.raises(ConfigError):
            ProductLedger.open(journal, statuses=["A", "B"])

    def test_tampered_payload_detected(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        path = tmp_path / "journal.jsonl"
        rows = read_lines(path)
        rows[5]["payload"]["product_name"] = "Counterfeit Coffee"
        write_lines(path, rows)
        with pytest.raises(IntegrityError):
            ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))

    def test_removed_record_detected(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        path = tmp_path / "journal.jsonl"
        rows = read_lines(path)
        del rows[6]
        write_lines(path, rows)
        with pytest.raises(IntegrityError):
            ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))

    def test_record_signed_by_another_key_rejected(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        path    = tmp_path / "journal.jsonl"
        records = load_records(path)
        mallory = Ed25519KeyManager.generate()
        forged  = records[5]
        forged.payload = dict(forged.payload, product_name="Counterfeit Coffee")
        forged.signer_public_key = mallory.public_key_hex
        forged.sign(mallory)
        write_lines(path, [r.to_dict() for r in records])
        with pytest.raises(IntegrityError, match="Signer mismatch at sequence 5"):
            ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))

    def test_rechained_forgery_rejected(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        path    = tmp_path / "journal.jsonl"
        records = load_records(path)
        mallory = Ed25519KeyManager.generate()
        records[5].payload = dict(records[5].payload, product_name="Counterfeit Coffee")
        for i in range(5, len(records)):
            records[i].causal_hash       = JournalRecord.causal_hash_of(records[i - 1])
            records[i].signer_public_key = mallory.public_key_hex
            records[i].sign(mallory)
        write_lines(path, [r.to_dict() for r in records])
        with pytest.raises(IntegrityError, match="Signer mismatch"):
            ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))

    def test_fully_resigned_journal_rejected(self, tmp_path, key):
        populate(ProductLedger(admin=ADMIN, journal=FileJournal(str(tmp_path), key_manager=key)))
        path    = tmp_path / "journal.jsonl"
        records = load_records(path)
        mallory = Ed25519KeyManager.generate()
        records[5].payload = dict(records[5].payload, product_name="Counterfeit Coffee")
        prev = None
        for record in records:
            record.causal_hash       = JournalRecord.causal_hash_of(prev)
            record.signer_public_key = mallory.public_key_hex
            record.sign(mallory)
            prev = record
        write_lines(path, [r.to_dict() for r in records])
        with pytest.raises(IntegrityError, match="untrusted key"):
            ProductLedger.open(FileJournal(str(tmp_path), key_manager=key))
