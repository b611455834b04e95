"""
LedgerSession — ledger operations on behalf of an identity provider.
"""

from typing import List, Optional, Union

from supplyledger.core.identity import IdentityProvider, StaticIdentity
from supplyledger.core.ledger import ProductLedger
from supplyledger.core.models import Product, ProductVerification, StatusHistoryEntry


class LedgerSession:
    """
    Binds a ledger to a source of caller identity.

        session = LedgerSession(ledger, StaticIdentity("0xfarm"))
        session.register_product(1001, "Organic Coffee", "Ethiopian Farms")

    Each call asks the provider for the current identity, so one session
    backed by ContextIdentity can serve many callers.
    """

    def __init__(
        self,
        ledger:   ProductLedger,
        identity: Union[IdentityProvider, str],
    ) -> None:
        self.ledger   = ledger
        self.identity = (
            StaticIdentity(identity) if isinstance(identity, str) else identity
        )

    @property
    def caller(self) -> str:
        return self.identity.current_caller_identity()

    # ── Mutations ─────────────────────────────────────────────

    def authorize_participant(self, target: str) -> None:
        self.ledger.authorize_participant(self.caller, target)

    def revoke_participant(self, target: str) -> None:
        self.ledger.revoke_participant(self.caller, target)

    def register_product(
        self,
        product_id:        int,
        product_name:      str,
        manufacturer_name: str,
        location:          Optional[str] = None,
    ) -> Product:
        return self.ledger.register_product(
            self.caller, product_id, product_name, manufacturer_name, location
        )

    def update_status(
        self,
        product_id: int,
        new_status: Union[int, str],
        location:   str,
    ) -> Product:
        return self.ledger.update_status(self.caller, product_id, new_status, location)

    def transfer_ownership(self, product_id: int, new_owner: str) -> Product:
        return self.ledger.transfer_ownership(self.caller, product_id, new_owner)

    # ── Reads ─────────────────────────────────────────────────

    def get_product(self, product_id: int) -> Product:
        return self.ledger.get_product(product_id)

    def get_product_history(self, product_id: int) -> List[StatusHistoryEntry]:
        return self.ledger.get_product_history(product_id)

    def verify_product(self, product_id: int) -> ProductVerification:
        return self.ledger.verify_product(product_id)

    def owned_products(self) -> List[Product]:
        """Products currently owned by the caller."""
        me = self.caller
        return [p for p in self.ledger.list_products() if p.current_owner == me]

    def __repr__(self) -> str:
        return f"LedgerSession(identity={self.identity!r})"
