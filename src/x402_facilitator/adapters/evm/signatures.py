"""
EVM Signature Decomposition

Splits a packed 65-byte ECDSA signature (``r || s || v``) into the three
scalars that ``permit`` and ``transferWithAuthorization`` take as separate
arguments. The split is purely positional:

    bytes  0..31 -> r
    bytes 32..63 -> s
    byte      64 -> v

Input must be exactly ``0x`` + 130 hex characters. Shorter, longer or
non-hex input is rejected; nothing is padded or recovered.
"""

import string

from .schemas import EVMECDSASignature
from ...engine.exceptions import MalformedSignatureError

SIGNATURE_BYTES = 65
SIGNATURE_HEX_LENGTH = 2 + SIGNATURE_BYTES * 2  # 132 including "0x"

_HEX_DIGITS = frozenset(string.hexdigits)


def decompose_signature(signature_hex: str) -> EVMECDSASignature:
    """
    Decompose a packed 65-byte hex signature into v, r and s.

    Args:
        signature_hex: 0x-prefixed, 132-character hex string.

    Returns:
        EVMECDSASignature: r and s as 0x-prefixed 32-byte hex, v as int.

    Raises:
        MalformedSignatureError: Wrong type, missing prefix, wrong length or
            non-hex characters.

    Example::

        sig = decompose_signature("0x" + "11" * 32 + "22" * 32 + "1b")
        sig.v  # 27
    """
    if not isinstance(signature_hex, str):
        raise MalformedSignatureError(
            f"Signature must be a hex string, got {type(signature_hex).__name__}"
        )
    if not signature_hex.startswith(("0x", "0X")):
        raise MalformedSignatureError("Signature must be 0x-prefixed")
    if len(signature_hex) != SIGNATURE_HEX_LENGTH:
        raise MalformedSignatureError(
            f"Signature must be {SIGNATURE_HEX_LENGTH} characters "
            f"({SIGNATURE_BYTES} bytes), got {len(signature_hex)}"
        )

    body = signature_hex[2:]
    if not set(body) <= _HEX_DIGITS:
        raise MalformedSignatureError("Signature contains non-hex characters")

    return EVMECDSASignature(
        r="0x" + body[0:64],
        s="0x" + body[64:128],
        v=int(body[128:130], 16),
    )
