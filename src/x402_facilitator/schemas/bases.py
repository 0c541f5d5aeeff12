"""
Base Schema Models for the x402 Facilitator

This module defines the base classes that all other schema models inherit
from. It provides the foundation for type safety, validation and consistent
field aliasing across normalization and settlement.

Core Classes:
    - CanonicalModel: Pydantic base model shared by wire and canonical records
    - FrozenModel: Immutable CanonicalModel for records that never change after
      construction (chain configs, canonical authorizations, results)
    - BaseSignature: Abstract signature component model
    - BaseAuthorization: Abstract signed-authorization model

Integer types:
    - Uint256: non-negative int bounded by ``UINT256_MAX``
    - Uint256String: decimal string whose value fits in a uint256

Dependencies:
    - pydantic: For data validation and serialization
"""

from abc import ABC

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing_extensions import Annotated

#: Largest value an EVM ``uint256`` argument can hold.
UINT256_MAX = 2 ** 256 - 1


def _check_uint256(value: int) -> int:
    if value > UINT256_MAX:
        raise ValueError("value does not fit in a uint256")
    return value


def _check_uint256_string(value: str) -> str:
    _check_uint256(int(value))
    return value


Uint256 = Annotated[int, Field(ge=0), AfterValidator(_check_uint256)]
Uint256String = Annotated[str, Field(pattern=r"^[0-9]+$"), AfterValidator(_check_uint256_string)]


class CanonicalModel(BaseModel):
    """
    Pydantic base model for every facilitator record.

    Fields may be populated by their Python name or their wire alias
    (``payTo`` / ``pay_to``).
    """

    model_config = ConfigDict(populate_by_name=True)


class FrozenModel(CanonicalModel):
    """
    Immutable canonical model.

    Assignment after construction raises a pydantic ``ValidationError`` and
    instances are hashable.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BaseSignature(FrozenModel, ABC):
    """
    Abstract base class for signature components.

    Attributes:
        signature_type: Family of the signature (e.g. "ECDSA").
    """

    signature_type: str = Field(..., description="Type of signature (e.g., ECDSA)")


class BaseAuthorization(FrozenModel, ABC):
    """
    Abstract base class for signed, off-chain transfer authorizations.

    An authorization is a capability: the owner keeps the funds until the
    settlement transaction is mined.

    Attributes:
        strategy: Tag naming the on-chain mechanism that redeems it.
        owner: Token owner that signed the authorization.
        value: Amount in the token's smallest unit, as a decimal string.
    """

    strategy: str = Field(..., description="On-chain settlement mechanism")
    owner: str = Field(..., description="Token owner address (0x-prefixed)")
    value: Uint256String = Field(..., description="Amount in smallest units, decimal string")

    @property
    def value_int(self) -> int:
        """Authorized amount as an arbitrary-precision integer."""
        return int(self.value)
