"""
Facilitator HTTP Client

Thin httpx client for a remote x402 facilitator service: verifies and
submits payments and lists the payment kinds the facilitator supports.
"""

from typing import Any, Dict, List, Optional

import httpx

from ..engine.exceptions import FacilitatorNetworkError
from ..schemas.results import SettlementResult, VerificationResult
from ..utils import logger


def normalize_url(url: str) -> str:
    """Strip trailing slashes from a facilitator base URL."""
    return url.rstrip("/")


def build_url(base_url: str, path: str) -> str:
    """Join a facilitator base URL and an endpoint path."""
    return f"{normalize_url(base_url)}{path}"


def _payment_body(
    payment_payload: Dict[str, Any],
    payment_requirements: Dict[str, Any],
    x402_version: Optional[int],
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "paymentPayload": payment_payload,
        "paymentRequirements": payment_requirements,
    }
    if x402_version is not None:
        body["x402Version"] = x402_version
    return body


class FacilitatorClient(httpx.AsyncClient):
    """
    httpx.AsyncClient bound to one facilitator service.

    Fully compatible with httpx.AsyncClient and usable as an async context
    manager.

    Usage:
        ```python
        async with FacilitatorClient("https://facilitator.example.com") as client:
            kinds = await client.supported()
            check = await client.verify(payment_payload, payment_requirements)
            result = await client.settle(payment_payload, payment_requirements)
        ```
    """

    def __init__(self, facilitator_url: str, timeout: float = 130.0, **kwargs):
        """
        Args:
            facilitator_url: Base URL of the facilitator service.
            timeout: Request timeout; settlement waits for on-chain
                confirmation, so keep it above the server's confirmation timeout.
            **kwargs: All standard httpx.AsyncClient arguments.
        """
        super().__init__(timeout=timeout, **kwargs)
        self.facilitator_url = normalize_url(facilitator_url)

    async def _call(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        url = build_url(self.facilitator_url, path)
        try:
            response = await self.request(method, url, json=json)
        except httpx.HTTPError as e:
            raise FacilitatorNetworkError(f"Facilitator request to {url} failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text
            logger.warning("Facilitator %s %s returned %s", method, path, response.status_code)
            raise FacilitatorNetworkError(
                f"Facilitator {method} {path} failed with {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise FacilitatorNetworkError(
                f"Facilitator returned a non-JSON response from {path}",
                status_code=response.status_code,
            ) from e

    async def settle(
        self,
        payment_payload: Dict[str, Any],
        payment_requirements: Dict[str, Any],
        x402_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Submit a payment for settlement.

        Returns:
            Dict[str, Any]: The facilitator's settlement response
            (``success``, ``transactionHash``, ``gasUsed``, ...).

        Raises:
            FacilitatorNetworkError: Transport failure or error status.
        """
        return await self._call(
            "POST", "/settle", json=_payment_body(payment_payload, payment_requirements, x402_version)
        )

    async def verify(
        self,
        payment_payload: Dict[str, Any],
        payment_requirements: Dict[str, Any],
        x402_version: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Ask the facilitator whether a payment would settle, without settling it.

        Returns:
            Dict[str, Any]: ``isValid`` plus ``invalidReason``/``invalidMessage``
            or ``payer``.

        Raises:
            FacilitatorNetworkError: Transport failure or error status.
        """
        return await self._call(
            "POST", "/verify", json=_payment_body(payment_payload, payment_requirements, x402_version)
        )

    async def supported(self) -> List[Dict[str, Any]]:
        """Payment kinds (``x402Version``, ``scheme``, ``network``) the facilitator accepts."""
        data = await self._call("GET", "/supported")
        return list(data.get("kinds", []))

    async def health(self) -> Dict[str, Any]:
        return await self._call("GET", "/health")


def parse_settlement(response: Dict[str, Any]) -> SettlementResult:
    """
    Rebuild a ``SettlementResult`` from a ``/settle`` response body.
    """
    return SettlementResult(
        success=bool(response.get("success")),
        strategy=response.get("strategy"),
        chain_id=response.get("chainId"),
        permit_transaction_hash=response.get("permitTransactionHash"),
        transfer_transaction_hash=response.get("transferTransactionHash"),
        gas_used=int(response.get("gasUsed") or 0),
        error_kind=response.get("errorKind"),
        error_message=response.get("errorMessage"),
        phase=response.get("phase"),
        payer=response.get("payer"),
    )


def parse_verification(response: Dict[str, Any]) -> VerificationResult:
    """
    Rebuild a ``VerificationResult`` from a ``/verify`` response body.
    """
    return VerificationResult(
        is_valid=bool(response.get("isValid")),
        payer=response.get("payer"),
        invalid_reason=response.get("invalidReason"),
        invalid_message=response.get("invalidMessage"),
    )
