"""
Client module for remote x402 facilitator services.
"""

from .http_client import (
    FacilitatorClient,
    build_url,
    normalize_url,
    parse_settlement,
    parse_verification,
)

__all__ = ["FacilitatorClient", "build_url", "normalize_url", "parse_settlement", "parse_verification"]
