"""
supplyledger/core/identity.py

Caller identity sources.

Every ledger operation takes the caller's identity explicitly. Hosting
code that already knows "who is calling" (an authenticated session, a
signing key, a worker bound to one participant) plugs an IdentityProvider
into a LedgerSession and calls operations without repeating it.
"""

import contextlib
import contextvars
from typing import Iterator, Optional

from supplyledger.core.crypto import Ed25519KeyManager


class IdentityProvider:
    """Supplies the identity of whoever is calling right now."""

    def current_caller_identity(self) -> str:
        raise NotImplementedError


class StaticIdentity(IdentityProvider):
    """Always the same identity. One per participant-bound worker."""

    def __init__(self, identity: str) -> None:
        if not identity:
            raise ValueError("identity must be a non-empty string")
        self._identity = identity

    def current_caller_identity(self) -> str:
        return self._identity

    def __repr__(self) -> str:
        return f"StaticIdentity({self._identity!r})"


class KeyIdentity(IdentityProvider):
    """Identity is the public key hex of a signing key."""

    def __init__(self, key_manager: Ed25519KeyManager) -> None:
        self._key_manager = key_manager

    def current_caller_identity(self) -> str:
        return self._key_manager.public_key_hex


_current_identity: contextvars.ContextVar = contextvars.ContextVar(
    "supplyledger_caller", default=None
)


class ContextIdentity(IdentityProvider):
    """
    Identity bound to the current thread or asyncio task.

        provider = ContextIdentity()
        with acting_as("0xmanufacturer"):
            session.register_product(1001, "Organic Coffee", "Ethiopian Farms")

    Raises LookupError when no identity is bound and no fallback is set.
    """

    def __init__(self, fallback: Optional[str] = None) -> None:
        self._fallback = fallback

    def current_caller_identity(self) -> str:
        identity = _current_identity.get() or self._fallback
        if not identity:
            raise LookupError(
                "No caller identity bound. Wrap the call in acting_as(identity)."
            )
        return identity


@contextlib.contextmanager
def acting_as(identity: str) -> Iterator[str]:
    """Bind identity for ContextIdentity within the with-block."""
    if not identity:
        raise ValueError("identity must be a non-empty string")
    token = _current_identity.set(identity)
    try:
        yield identity
    finally:
        _current_identity.reset(token)
