"""
Payment payload normalization.

Reconciles the two x402 wire versions into one ``NormalizedPayment``:

    1. detect the version (explicit ``x402Version`` or the requirements'
       discriminator: ``maxAmountRequired`` -> v1, ``amount`` -> v2)
    2. validate payload and requirements against that version's strict models
    3. resolve the network to a chain ID and check both sides agree
    4. pick the strategy from the authorization's shape
    5. check the authorized value covers the required amount

A ``NormalizedPayment`` passed back in is returned unchanged.
"""

from typing import Any, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from ..adapters.evm.networks import to_v1_network_id, to_v2_network_id
from ..adapters.evm.schemas import Authorization, PermitAuthorization, TransferAuthorization
from ..schemas.payloads import (
    PERMIT_AUTHORIZATION_KEYS,
    TRANSFER_AUTHORIZATION_KEYS,
    PaymentPayloadV1,
    PaymentPayloadV2,
    PaymentRequirementsV1,
    PaymentRequirementsV2,
    WirePermitAuthorization,
    WireTransferAuthorization,
)
from ..schemas.results import NormalizedPayment
from ..schemas.versions import ProtocolVersion
from ..utils import logger

SUPPORTED_SCHEME = "exact"

_M = TypeVar("_M", bound=BaseModel)


# ==================== Type Guards ====================

def _has_payload_shape(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and isinstance(value.get("scheme"), str)
        and isinstance(value.get("network"), (int, str))
        and not isinstance(value.get("network"), bool)
        and isinstance(value.get("payload"), Mapping)
    )


def _version_tag(value: Mapping) -> Any:
    version = value.get("x402Version")
    # bool is an int subclass; True must not read as version 1
    return None if isinstance(version, bool) else version


def is_payment_payload(value: Any) -> bool:
    return _has_payload_shape(value) and _version_tag(value) in (1, 2)


def is_payment_payload_v1(value: Any) -> bool:
    return _has_payload_shape(value) and _version_tag(value) == 1


def is_payment_payload_v2(value: Any) -> bool:
    return (
        _has_payload_shape(value)
        and _version_tag(value) == 2
        and isinstance(value.get("network"), str)
    )


def is_payment_requirements_v1(value: Any) -> bool:
    return isinstance(value, Mapping) and "maxAmountRequired" in value


def is_payment_requirements_v2(value: Any) -> bool:
    return isinstance(value, Mapping) and "amount" in value and "maxAmountRequired" not in value


# ==================== Version Detection ====================

def detect_version(raw_payload: Mapping[str, Any], raw_requirements: Mapping[str, Any]) -> ProtocolVersion:
    """
    Determine the wire version of a payload/requirements pair.

    An explicit ``x402Version`` on the payload wins, but must agree with the
    requirements' discriminator field.

    Raises:
        ValidationError: Unknown version tag, neither or both discriminators,
            or a tag that contradicts the requirements.
    """
    has_v1_amount = "maxAmountRequired" in raw_requirements
    has_v2_amount = "amount" in raw_requirements
    if has_v1_amount and has_v2_amount:
        raise ValidationError(
            "Requirements carry both maxAmountRequired and amount",
            field="paymentRequirements",
        )
    if not has_v1_amount and not has_v2_amount:
        raise ValidationError(
            "Requirements carry neither maxAmountRequired nor amount",
            field="paymentRequirements",
        )
    inferred = ProtocolVersion.V1 if has_v1_amount else ProtocolVersion.V2

    if "x402Version" not in raw_payload:
        return inferred
    try:
        declared = ProtocolVersion.from_value(raw_payload["x402Version"])
    except ValueError as e:
        raise ValidationError(str(e), field="paymentPayload.x402Version") from None
    if declared is not inferred:
        raise ValidationError(
            f"x402Version {int(declared)} does not match requirements "
            f"(detected version {int(inferred)})",
            field="paymentPayload.x402Version",
        )
    return declared


# ==================== Validation Helpers ====================

def _validate(model: Type[_M], data: Mapping[str, Any], prefix: str) -> _M:
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        field = f"{prefix}.{location}" if location else prefix
        raise ValidationError(f"Invalid {prefix}: {first.get('msg')}", field=field) from None


def _build_authorization(raw: Mapping[str, Any]) -> Authorization:
    keys = frozenset(raw)
    field = "paymentPayload.payload.authorization"
    if keys == PERMIT_AUTHORIZATION_KEYS:
        wire = _validate(WirePermitAuthorization, raw, field)
        return PermitAuthorization(
            owner=wire.owner,
            spender=wire.spender,
            value=wire.value,
            deadline=int(wire.deadline),
        )
    if keys == TRANSFER_AUTHORIZATION_KEYS:
        wire = _validate(WireTransferAuthorization, raw, field)
        return TransferAuthorization(
            owner=wire.from_,
            to=wire.to,
            value=wire.value,
            valid_after=int(wire.valid_after),
            valid_before=int(wire.valid_before),
            nonce=wire.nonce,
        )
    raise ValidationError(
        "Authorization matches neither the permit (owner, spender, value, deadline) "
        "nor the transfer (from, to, value, validAfter, validBefore, nonce) shape",
        field=field,
    )


# ==================== Normalizer ====================

def normalize(
    raw_payload: Union[Mapping[str, Any], NormalizedPayment],
    raw_requirements: Optional[Mapping[str, Any]] = None,
) -> NormalizedPayment:
    """
    Normalize an x402 payload and its requirements into a canonical record.

    Args:
        raw_payload: Decoded ``paymentPayload`` JSON, or an already
            normalized payment (returned as-is).
        raw_requirements: Decoded ``paymentRequirements`` JSON.

    Returns:
        NormalizedPayment: Version-independent payment record.

    Raises:
        ValidationError: Malformed payload or requirements.
        UnsupportedNetworkError: Unknown network identifier.
    """
    if isinstance(raw_payload, NormalizedPayment):
        return raw_payload
    if not isinstance(raw_payload, Mapping):
        raise ValidationError("Payment payload must be an object", field="paymentPayload")
    if not isinstance(raw_requirements, Mapping):
        raise ValidationError("Payment requirements must be an object", field="paymentRequirements")

    version = detect_version(raw_payload, raw_requirements)
    payload_data = dict(raw_payload)
    payload_data.setdefault("x402Version", int(version))

    if version is ProtocolVersion.V1:
        payload = _validate(PaymentPayloadV1, payload_data, "paymentPayload")
        requirements = _validate(PaymentRequirementsV1, raw_requirements, "paymentRequirements")
        network = to_v2_network_id(payload.network)
        requirements_network = to_v2_network_id(requirements.network)
    else:
        # v2 clients may only echo scheme/network inside ``accepted``
        accepted = payload_data.get("accepted")
        if isinstance(accepted, Mapping):
            for key in ("scheme", "network"):
                if key not in payload_data and key in accepted:
                    payload_data[key] = accepted[key]
        payload = _validate(PaymentPayloadV2, payload_data, "paymentPayload")
        requirements = _validate(PaymentRequirementsV2, raw_requirements, "paymentRequirements")
        network = to_v2_network_id(to_v1_network_id(payload.network))
        requirements_network = to_v2_network_id(to_v1_network_id(requirements.network))

    if network != requirements_network:
        raise ValidationError(
            f"Payload network {network} does not match requirements network {requirements_network}",
            field="paymentPayload.network",
        )
    if payload.scheme != SUPPORTED_SCHEME or requirements.scheme != SUPPORTED_SCHEME:
        raise ValidationError(
            f"Unsupported scheme: payload={payload.scheme!r}, requirements={requirements.scheme!r}",
            field="paymentPayload.scheme",
        )

    authorization = _build_authorization(payload.payload.authorization)
    required = requirements.required_amount
    if authorization.value_int < int(required):
        raise ValidationError(
            f"Authorized value {authorization.value} is below the required amount {required}",
            field="paymentPayload.payload.authorization.value",
        )

    chain_id = to_v1_network_id(network)
    logger.debug(
        "Normalized x402 v%s payment: chain=%s, strategy=%s, payer=%s",
        int(version), chain_id, authorization.strategy, authorization.owner,
    )
    return NormalizedPayment(
        x402_version=int(version),
        scheme=payload.scheme,
        chain_id=chain_id,
        network=network,
        token=requirements.asset,
        recipient=requirements.pay_to,
        amount_required=required,
        authorization=authorization,
        signature=payload.payload.signature,
    )
