"""
supplyledger/core/crypto.py

Ed25519 signing for journal records.

The ledger operator holds one key. Every committed journal record is
signed with it, so a journal copied off disk can be checked for tampering
with nothing but the public key embedded in each record.

    key = Ed25519KeyManager.generate()
    sig = key.sign(data)                                   # base64url, no padding
    Ed25519KeyManager.verify_detached(data, sig, key.public_key_hex)

public_key_hex doubles as a participant identity (see core/identity.py).
"""

import base64
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


PUBLIC_KEY_HEX_LENGTH = 64


class Ed25519KeyManager:
    """Holds an Ed25519 private key and signs canonical record bytes."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key: Ed25519PrivateKey = private_key
        self._public_key:  Ed25519PublicKey  = private_key.public_key()
        self._public_key_hex: str = (
            self._public_key
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        """Generate a new random key pair."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load a PEM (PKCS8) private key.
        Raises FileNotFoundError if path does not exist, ValueError if the
        file does not hold an Ed25519 key.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Key file not found: {path}")
        try:
            private_key = load_pem_private_key(path.read_bytes(), password=None)
        except Exception as exc:
            raise ValueError(
                f"Failed to load Ed25519 key from {path}: {exc}"
            ) from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(
                f"Key file {path} does not contain an Ed25519 private key"
            )
        return cls(private_key)

    @classmethod
    def from_private_bytes(cls, seed: bytes) -> "Ed25519KeyManager":
        """Load from a raw 32-byte seed."""
        if len(seed) != 32:
            raise ValueError(
                f"Ed25519 seed must be 32 bytes, got {len(seed)}"
            )
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def load_or_create(cls, path: Path) -> "Ed25519KeyManager":
        """Load the key at path, or generate one and save it there."""
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    # ── Public key ────────────────────────────────────────────

    @property
    def public_key_hex(self) -> str:
        """64-character lowercase hex of the raw 32-byte public key."""
        return self._public_key_hex

    # ── Signing / verification ────────────────────────────────

    def sign(self, data: bytes) -> str:
        """Sign data. Returns base64url without '=' padding."""
        raw_sig = self._private_key.sign(data)
        return base64.urlsafe_b64encode(raw_sig).rstrip(b"=").decode("ascii")

    def verify(self, data: bytes, signature_b64: str) -> bool:
        """Verify a signature against this key. Never raises."""
        return Ed25519KeyManager.verify_detached(
            data, signature_b64, self._public_key_hex
        )

    @staticmethod
    def verify_detached(
        data:           bytes,
        signature_b64:  str,
        public_key_hex: str,
    ) -> bool:
        """
        Verify a signature with only the signer's public key hex.

        Returns False for any failure: wrong key, bad encoding, wrong
        length, corrupted signature. Never raises.
        """
        try:
            if (
                not isinstance(public_key_hex, str)
                or len(public_key_hex) != PUBLIC_KEY_HEX_LENGTH
            ):
                return False

            pub = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))

            padded_sig = signature_b64 + "=" * (-len(signature_b64) % 4)
            raw_sig    = base64.urlsafe_b64decode(padded_sig)
            if len(raw_sig) != 64:
                return False

            pub.verify(raw_sig, data)
            return True

        except Exception:
            return False

    # ── Persistence ───────────────────────────────────────────

    def save(self, path: Path) -> None:
        """
        Write the private key as PEM. Creates parent directories.
        Raises RuntimeError on write failure.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            pem = self._private_key.private_bytes(
                encoding=             Encoding.PEM,
                format=               PrivateFormat.PKCS8,
                encryption_algorithm= NoEncryption(),
            )
            path.write_bytes(pem)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to save Ed25519 key to {path}: {exc}"
            ) from exc

    def __repr__(self) -> str:
        return (
            f"Ed25519KeyManager(public_key_hex={self._public_key_hex[:16]}...)"
        )
