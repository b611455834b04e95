"""
SupplyLedger Exception Hierarchy

All exceptions inherit from SupplyLedgerError for easy catching.

LedgerRejection subclasses are the typed precondition failures of the
product ledger. Each carries a stable `code` and a default message that
clients match on, so both are part of the public contract.
"""


class SupplyLedgerError(Exception):
    """Base exception for all SupplyLedger errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigError(SupplyLedgerError):
    """Raised when configuration is missing or invalid"""
    pass


class JournalError(SupplyLedgerError):
    """Raised when journal persistence fails"""
    pass


class IntegrityError(JournalError):
    """Raised when a journal fails chain or signature verification"""
    pass


# ─────────────────────────────────────────────────────────────
# Ledger rejections
# ─────────────────────────────────────────────────────────────

class LedgerRejection(SupplyLedgerError):
    """
    A ledger operation was rejected before any state changed.

    Always recoverable at the call site. The ledger is left exactly as it
    was before the call.
    """

    code = "Rejected"
    default_message = "Operation rejected"

    def __init__(self, message: str = None, details: dict = None):
        super().__init__(message or self.default_message, details)


class NotAuthorized(LedgerRejection):
    """Caller is not an authorized participant (or not the admin)"""
    code = "NotAuthorized"
    default_message = "Not authorized"


class CannotRevokeAdmin(LedgerRejection):
    """Attempt to revoke the admin's authorization"""
    code = "CannotRevokeAdmin"
    default_message = "Cannot revoke admin"


class InvalidProductId(LedgerRejection):
    """Product id is zero, negative, or not an integer"""
    code = "InvalidProductId"
    default_message = "Invalid product ID"


class EmptyName(LedgerRejection):
    """Product name is empty"""
    code = "EmptyName"
    default_message = "Product name cannot be empty"


class DuplicateProduct(LedgerRejection):
    """Product id is already registered"""
    code = "DuplicateProduct"
    default_message = "Product already registered"


class ProductNotFound(LedgerRejection):
    """Product id has never been registered"""
    code = "ProductNotFound"
    default_message = "Product does not exist"


class EmptyLocation(LedgerRejection):
    """Status update carries an empty location"""
    code = "EmptyLocation"
    default_message = "Location cannot be empty"


class InvalidStatus(LedgerRejection):
    """Status is outside the configured status scale"""
    code = "InvalidStatus"
    default_message = "Unknown status"


class InvalidProgression(LedgerRejection):
    """New status does not move strictly forward"""
    code = "InvalidProgression"
    default_message = "Invalid status progression"


class NotCurrentOwner(LedgerRejection):
    """Caller does not own the product"""
    code = "NotCurrentOwner"
    default_message = "You are not the current owner"


class NewOwnerNotAuthorized(LedgerRejection):
    """Transfer target is not an authorized participant"""
    code = "NewOwnerNotAuthorized"
    default_message = "New owner must be authorized"


class SelfTransfer(LedgerRejection):
    """Transfer target is the current owner"""
    code = "SelfTransfer"
    default_message = "Cannot transfer to yourself"
