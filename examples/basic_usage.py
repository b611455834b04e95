"""
SupplyLedger: Basic Usage Example

Demonstrates:
- Creating a journaled ledger
- Authorizing participants
- Registering a product and moving it along the supply chain
- Subscribing to events
- Restoring the ledger and auditing its journal
"""

import tempfile
from pathlib import Path

from supplyledger import (
    CallbackEventSink,
    Ed25519KeyManager,
    FileJournal,
    InvalidProgression,
    JournalAudit,
    LedgerSession,
    ProductLedger,
    ProductStatus,
)


ADMIN        = "0xadmin"
FARM         = "0xethiopian-farms"
DISTRIBUTOR  = "0xglobal-freight"
CAFE         = "0xcafe-central"


def main():
    """Basic SupplyLedger usage."""

    print("=" * 60)
    print("SupplyLedger: Basic Usage Example")
    print("=" * 60)
    print()

    home = Path(tempfile.mkdtemp(prefix="supplyledger-demo-"))

    # 1. Ledger with a file journal and an event subscriber
    print("1. Creating ledger...")
    sink = CallbackEventSink(lambda event: print(f"   event: {event.to_dict()}"))
    key    = Ed25519KeyManager.generate()
    ledger = ProductLedger(admin=ADMIN, journal=FileJournal(str(home), key_manager=key), sink=sink)
    print(f"   {ledger!r}")
    print()

    # 2. Participants
    print("2. Authorizing participants...")
    for participant in (FARM, DISTRIBUTOR, CAFE):
        ledger.authorize_participant(ADMIN, participant)
    print()

    # 3. Product journey
    print("3. Farm to cafe...")
    farm = LedgerSession(ledger, FARM)
    farm.register_product(1001, "Organic Coffee", "Ethiopian Farms")
    farm.update_status(1001, ProductStatus.IN_TRANSIT, "Warehouse A")
    farm.transfer_ownership(1001, DISTRIBUTOR)

    freight = LedgerSession(ledger, DISTRIBUTOR)
    freight.update_status(1001, ProductStatus.DELIVERED, "Cafe Central")
    freight.transfer_ownership(1001, CAFE)

    try:
        freight.update_status(1001, ProductStatus.IN_TRANSIT, "Back to port")
    except InvalidProgression as e:
        print(f"   rejected as expected: {e}")
    print()

    # 4. Reads
    print("4. Product record...")
    product = ledger.get_product(1001)
    print(f"   owner:  {product.current_owner}")
    print(f"   status: {ledger.status_scale.name_of(product.current_status)}")
    for entry in ledger.get_product_history(1001):
        print(f"   {entry.timestamp}  {ledger.status_scale.name_of(entry.status):<13} {entry.location}")
    print(f"   verify 1001: {tuple(ledger.verify_product(1001))}")
    print(f"   verify 9999: {tuple(ledger.verify_product(9999))}")
    print()

    # 5. Restore + audit
    print("5. Restoring and auditing...")
    restored = ProductLedger.open(FileJournal(str(home), key_manager=key))
    print(f"   restored: {restored!r}")

    audit = JournalAudit(trusted_signer=key.public_key_hex)
    audit.load(home / FileJournal.FILENAME)
    summary = audit.verify()
    print(f"   journal valid: {summary.journal_valid}  records: {summary.total_records}")
    print()

    print("=" * 60)
    print(f"Journal: {home / FileJournal.FILENAME}")
    print("=" * 60)


if __name__ == "__main__":
    main()
