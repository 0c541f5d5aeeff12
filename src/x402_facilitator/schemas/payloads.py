"""
x402 Wire Payload Models

Strict (non-coercing) pydantic models for the two x402 wire versions. They
are only ever built by the payload normalizer, which picks the version first
and then validates against exactly one variant.

    Version 1:  network = chain ID (8453), digit string ("8453") or legacy
                name ("base"); requirements carry ``maxAmountRequired``.
    Version 2:  network = CAIP-2 ("eip155:8453"); requirements carry
                ``amount`` and never ``maxAmountRequired``.

Authorization shapes inside ``payload.authorization``:
    WirePermitAuthorization     owner, spender, value, deadline
    WireTransferAuthorization   from, to, value, validAfter, validBefore, nonce
"""

from typing import Any, Dict, Literal, Optional, Union

from pydantic import ConfigDict, Field, StrictInt, StrictStr, model_validator
from typing_extensions import Annotated

from .bases import CanonicalModel, Uint256, Uint256String

DecimalString = Uint256String
WireAddress = Annotated[str, Field(pattern=r"^0x[0-9a-fA-F]{40}$")]
WireUint = Union[Uint256, DecimalString]

PERMIT_AUTHORIZATION_KEYS = frozenset({"owner", "spender", "value", "deadline"})
TRANSFER_AUTHORIZATION_KEYS = frozenset({"from", "to", "value", "validAfter", "validBefore", "nonce"})


class WireModel(CanonicalModel):
    model_config = ConfigDict(populate_by_name=True, strict=True, frozen=True)


class WirePermitAuthorization(WireModel):
    """EIP-2612 permit fields as sent on the wire."""
    model_config = ConfigDict(populate_by_name=True, strict=True, frozen=True, extra="forbid")

    owner: WireAddress
    spender: WireAddress
    value: DecimalString
    deadline: WireUint


class WireTransferAuthorization(WireModel):
    """EIP-3009 authorization fields as sent on the wire."""
    model_config = ConfigDict(populate_by_name=True, strict=True, frozen=True, extra="forbid")

    from_: WireAddress = Field(..., alias="from")
    to: WireAddress
    value: DecimalString
    valid_after: WireUint = Field(..., alias="validAfter")
    valid_before: WireUint = Field(..., alias="validBefore")
    nonce: Annotated[str, Field(pattern=r"^0x[0-9a-fA-F]{64}$")]


class ExactPayload(WireModel):
    """``payload`` object of the ``exact`` scheme."""
    signature: StrictStr
    authorization: Dict[str, Any]


class PaymentPayloadV1(WireModel):
    x402_version: Literal[1] = Field(default=1, alias="x402Version")
    scheme: StrictStr
    network: Union[StrictInt, StrictStr]
    payload: ExactPayload


class PaymentPayloadV2(WireModel):
    x402_version: Literal[2] = Field(default=2, alias="x402Version")
    scheme: StrictStr
    network: StrictStr
    payload: ExactPayload
    resource: Optional[Dict[str, Any]] = None
    accepted: Optional[Dict[str, Any]] = None
    extensions: Optional[Dict[str, Any]] = None


class _RequirementsBase(WireModel):
    scheme: StrictStr
    pay_to: WireAddress = Field(..., alias="payTo")
    asset: WireAddress
    max_timeout_seconds: Optional[StrictInt] = Field(default=None, alias="maxTimeoutSeconds")
    extra: Optional[Dict[str, Any]] = None


class PaymentRequirementsV1(_RequirementsBase):
    network: Union[StrictInt, StrictStr]
    max_amount_required: DecimalString = Field(..., alias="maxAmountRequired")
    resource: Optional[StrictStr] = None
    description: Optional[StrictStr] = None
    mime_type: Optional[StrictStr] = Field(default=None, alias="mimeType")

    @property
    def required_amount(self) -> str:
        return self.max_amount_required


class PaymentRequirementsV2(_RequirementsBase):
    network: StrictStr
    amount: DecimalString

    @model_validator(mode="before")
    @classmethod
    def _reject_v1_amount(cls, data: Any) -> Any:
        if isinstance(data, dict) and "maxAmountRequired" in data:
            raise ValueError("v2 requirements must not carry maxAmountRequired")
        return data

    @property
    def required_amount(self) -> str:
        return self.amount


PaymentPayload = Union[PaymentPayloadV1, PaymentPayloadV2]
PaymentRequirements = Union[PaymentRequirementsV1, PaymentRequirementsV2]
