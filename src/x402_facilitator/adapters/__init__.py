from .evm import (
    ChainConfig,
    ChainRegistry,
    FacilitatorCredential,
    FeeEstimator,
    TransactionSubmitter,
    decompose_signature,
)

__all__ = [
    "ChainConfig",
    "ChainRegistry",
    "FacilitatorCredential",
    "FeeEstimator",
    "TransactionSubmitter",
    "decompose_signature",
]
