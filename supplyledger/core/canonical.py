"""
SupplyLedger: Canonical JSON Encoding — RFC 8785 (JCS)

This is the ONLY canonicalization used for journal signing and chaining.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

import jcs as _jcs


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    All values must be JSON-primitive (str, int, float, bool, None, list, dict).

    Returns:
        UTF-8 encoded canonical JSON bytes, suitable for signing.
    """
    return _jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """
    SHA-256 of the RFC 8785 canonical form.

    Returns:
        Lowercase hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()
