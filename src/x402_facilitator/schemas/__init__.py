from .bases import CanonicalModel, FrozenModel, BaseSignature, BaseAuthorization
from .versions import ProtocolVersion, SUPPORTED_VERSIONS
from .payloads import (
    PaymentPayloadV1,
    PaymentPayloadV2,
    PaymentRequirementsV1,
    PaymentRequirementsV2,
    PaymentPayload,
    PaymentRequirements,
)
from .results import NormalizedPayment, SettlementResult, VerificationResult

__all__ = [
    "CanonicalModel",
    "FrozenModel",
    "BaseSignature",
    "BaseAuthorization",
    "ProtocolVersion",
    "SUPPORTED_VERSIONS",
    "PaymentPayloadV1",
    "PaymentPayloadV2",
    "PaymentRequirementsV1",
    "PaymentRequirementsV2",
    "PaymentPayload",
    "PaymentRequirements",
    "NormalizedPayment",
    "SettlementResult",
    "VerificationResult",
]
