"""
EVM Adapter Schema Models

Pydantic models for EVM signatures, canonical authorizations and fee quotes.
All classes inherit from the base schema hierarchy in ``schemas.bases`` and
are immutable once built.

Signature classes:
    - EVMECDSASignature: v/r/s components of a 65-byte ECDSA signature.

Canonical authorization classes:
    - PermitAuthorization: EIP-2612 ``permit()`` authorization (owner,
      spender, value, deadline). ``strategy="permit"``.
    - TransferAuthorization: EIP-3009 ``transferWithAuthorization`` payload
      (from, to, value, validAfter, validBefore, nonce).
      ``strategy="authorized_transfer"``.
    - Authorization: discriminated union of the two on ``strategy``.

Fee classes:
    - FeeQuote: buffered EIP-1559 fee bid for one settlement run.
"""

from typing import Literal, Union

from pydantic import Field
from typing_extensions import Annotated

from ...schemas.bases import BaseAuthorization, BaseSignature, FrozenModel, Uint256

EVMAddress = Annotated[str, Field(pattern=r"^0x[0-9a-fA-F]{40}$")]
Bytes32Hex = Annotated[str, Field(pattern=r"^0x[0-9a-fA-F]{64}$")]


class EVMECDSASignature(BaseSignature):
    """
    EVM ECDSA signature split into (v, r, s).

    Produced by :func:`decompose_signature`. ``v`` is byte 64 of the packed
    signature exactly as signed (27/28 for most wallets); it is not
    normalized here.

    Attributes:
        v: Recovery ID, one byte.
        r: r component, 0x-prefixed 64-char hex (32 bytes).
        s: s component, 0x-prefixed 64-char hex (32 bytes).

    Example::

        sig = EVMECDSASignature(v=27, r="0x" + "a" * 64, s="0x" + "b" * 64)
        sig.to_packed_hex()  # "0x" + "a" * 64 + "b" * 64 + "1b"
    """

    signature_type: Literal["ECDSA"] = Field(default="ECDSA", description="Signature family")
    v: int = Field(..., ge=0, le=255, description="ECDSA recovery ID (one byte)")
    r: Bytes32Hex = Field(..., description="Signature r component (32 bytes)")
    s: Bytes32Hex = Field(..., description="Signature s component (32 bytes)")

    @property
    def r_bytes(self) -> bytes:
        return bytes.fromhex(self.r[2:])

    @property
    def s_bytes(self) -> bytes:
        return bytes.fromhex(self.s[2:])

    def to_packed_hex(self) -> str:
        """
        Encode v/r/s back into the packed 65-byte form (``r || s || v``).

        Returns:
            0x-prefixed 132-character hex string.
        """
        return "0x" + self.r[2:] + self.s[2:] + format(self.v, "02x")

    def __repr__(self) -> str:
        return f"EVMECDSASignature(v={self.v}, r={self.r[:10]}..., s={self.s[:10]}...)"


class PermitAuthorization(BaseAuthorization):
    """
    Canonical EIP-2612 permit authorization.

    Redeemed in two phases: ``permit(owner, spender, value, deadline, v, r, s)``
    followed by ``transferFrom(owner, recipient, value)``. ``spender`` must be
    the facilitator's own address.

    Attributes:
        strategy: Always ``"permit"``.
        owner: Token owner that signed the permit.
        spender: Address allowed to spend; must be the facilitator.
        value: Approved amount in smallest units (decimal string).
        deadline: Unix timestamp after which the permit is invalid.
    """

    strategy: Literal["permit"] = Field(default="permit", description="Settlement strategy tag")
    owner: EVMAddress = Field(..., description="Token owner address")
    spender: EVMAddress = Field(..., description="Authorized spender (the facilitator)")
    deadline: Uint256 = Field(..., description="Unix timestamp after which the permit expires")


class TransferAuthorization(BaseAuthorization):
    """
    Canonical EIP-3009 ``transferWithAuthorization`` authorization.

    Validated and executed atomically by the token contract in a single
    transaction, so there is no allowance step and no partial state.

    Attributes:
        strategy: Always ``"authorized_transfer"``.
        owner: Authorizer (``from`` in EIP-3009).
        to: Recipient fixed by the signature.
        value: Amount in smallest units (decimal string).
        valid_after: Start of validity (unix, exclusive on-chain).
        valid_before: End of validity (unix, exclusive on-chain).
        nonce: Unique bytes32 nonce (0x-prefixed hex).
    """

    strategy: Literal["authorized_transfer"] = Field(
        default="authorized_transfer", description="Settlement strategy tag"
    )
    owner: EVMAddress = Field(..., description="Authorizer address (EIP-3009 `from`)")
    to: EVMAddress = Field(..., description="Recipient address (EIP-3009 `to`)")
    valid_after: Uint256 = Field(..., description="Validity start (unix)")
    valid_before: Uint256 = Field(..., description="Validity end (unix)")
    nonce: Bytes32Hex = Field(..., description="Unique bytes32 nonce")

    @property
    def nonce_bytes(self) -> bytes:
        return bytes.fromhex(self.nonce[2:])


Authorization = Annotated[
    Union[
        PermitAuthorization,    # strategy: "permit"
        TransferAuthorization,  # strategy: "authorized_transfer"
    ],
    Field(discriminator="strategy"),
]


class FeeQuote(FrozenModel):
    """
    Buffered EIP-1559 fee bid.

    Attributes:
        base_fee: Network gas price as reported by ``eth_gasPrice`` (wei).
        priority_fee: Suggested (or fallback) priority fee (wei).
        max_priority_fee_per_gas: ``priority_fee * 1.5``.
        max_fee_per_gas: ``base_fee * 1.2 + max_priority_fee_per_gas``.
        priority_fee_fallback: True when the default priority fee was used.
    """

    base_fee: int = Field(..., ge=0)
    priority_fee: int = Field(..., ge=0)
    max_priority_fee_per_gas: int = Field(..., ge=0)
    max_fee_per_gas: int = Field(..., ge=0)
    priority_fee_fallback: bool = Field(default=False)

    def worst_case_cost(self, gas: int) -> int:
        """Maximum native-currency spend (wei) for ``gas`` units."""
        return gas * self.max_fee_per_gas
