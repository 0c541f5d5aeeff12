from .chains import ChainConfig, ChainRegistry, NativeCurrency, DEFAULT_CHAINS
from .credentials import FacilitatorCredential
from .fees import FeeEstimator, DEFAULT_PRIORITY_FEE_WEI, apply_fee_buffer
from .networks import (
    parse_caip2,
    to_v1_network_id,
    to_v2_network_id,
    resolve_chain_id,
    get_network,
    is_valid_network,
    get_mainnets,
    get_testnets,
    supported_networks,
)
from .schemas import (
    EVMECDSASignature,
    PermitAuthorization,
    TransferAuthorization,
    Authorization,
    FeeQuote,
)
from .signatures import decompose_signature
from .submitter import TransactionSubmitter

__all__ = [
    "ChainConfig",
    "ChainRegistry",
    "NativeCurrency",
    "DEFAULT_CHAINS",
    "FacilitatorCredential",
    "FeeEstimator",
    "DEFAULT_PRIORITY_FEE_WEI",
    "apply_fee_buffer",
    "parse_caip2",
    "to_v1_network_id",
    "to_v2_network_id",
    "resolve_chain_id",
    "get_network",
    "is_valid_network",
    "get_mainnets",
    "get_testnets",
    "supported_networks",
    "EVMECDSASignature",
    "PermitAuthorization",
    "TransferAuthorization",
    "Authorization",
    "FeeQuote",
    "decompose_signature",
    "TransactionSubmitter",
]
