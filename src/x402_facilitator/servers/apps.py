"""
x402 Facilitator Server - FastAPI wrapper around the settlement engine.

Endpoints:
    POST /verify     normalize an x402 payment and run the no-submit preflight
    POST /settle     normalize an x402 payment and settle it on-chain
    GET  /supported  payment kinds (version, scheme, network) accepted
    GET  /health     liveness check
"""

from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..adapters.evm.chains import ChainRegistry
from ..engine.exceptions import UnsupportedNetworkError, ValidationError
from ..engine.executors import SettlementExecutor
from ..engine.normalizer import SUPPORTED_SCHEME, normalize
from ..schemas.results import NormalizedPayment
from ..schemas.versions import SUPPORTED_VERSIONS
from ..utils import logger


class FacilitatorServer(FastAPI):
    """FastAPI server exposing the x402 facilitator settlement API."""

    def __init__(
        self,
        executor: SettlementExecutor,
        registry: Optional[ChainRegistry] = None,
        **fastapi_kwargs
    ):
        """Initialize the facilitator server.

        Args:
            executor: Settlement executor shared by every request
            registry: Chain registry used for /supported (default: the executor's)
            **fastapi_kwargs: FastAPI arguments (title, version, etc.)
        """
        self.executor = executor
        self.registry = registry or executor.registry

        fastapi_kwargs.setdefault("title", "x402 Facilitator")
        super().__init__(**fastapi_kwargs)

        self._setup_verify_endpoint()
        self._setup_settle_endpoint()
        self._setup_supported_endpoint()
        self._setup_health_endpoint()

    def supported_kinds(self) -> List[Dict[str, Any]]:
        """Payment kinds for every configured chain in both wire versions."""
        kinds: List[Dict[str, Any]] = []
        for config in sorted(self.registry, key=lambda c: c.chain_id):
            for version in SUPPORTED_VERSIONS:
                kinds.append({
                    "x402Version": int(version),
                    "scheme": SUPPORTED_SCHEME,
                    "network": config.chain_id if version == 1 else config.caip2,
                })
        return kinds

    async def _read_payment(self, request: Request, action: str) -> Union[NormalizedPayment, JSONResponse]:
        """Decode and normalize a ``{x402Version?, paymentPayload, paymentRequirements}`` body."""
        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"error": "validation_error", "message": "Request body must be JSON"},
            )
        if not isinstance(body, dict):
            return JSONResponse(
                status_code=400,
                content={"error": "validation_error", "message": "Request body must be an object"},
            )

        payload = body.get("paymentPayload")
        if isinstance(payload, dict) and "x402Version" in body and "x402Version" not in payload:
            payload = {**payload, "x402Version": body["x402Version"]}

        try:
            return normalize(payload, body.get("paymentRequirements"))
        except (ValidationError, UnsupportedNetworkError) as e:
            logger.warning("Rejected %s request: %s", action, e)
            return JSONResponse(
                status_code=400,
                content={
                    "error": e.kind.value,
                    "message": e.message,
                    "field": getattr(e, "field", None),
                },
            )

    def _setup_verify_endpoint(self, path: str = "/verify") -> None:
        @self.post(path)
        async def verify(request: Request):
            """Normalize a payment and run the settlement preflight without submitting."""
            payment = await self._read_payment(request, "verify")
            if isinstance(payment, JSONResponse):
                return payment
            result = await self.executor.verify_payment(payment)
            return JSONResponse(status_code=200, content=result.to_response())

    def _setup_settle_endpoint(self, path: str = "/settle") -> None:
        @self.post(path)
        async def settle(request: Request):
            """Normalize and settle one payment. Settlement outcomes are always 200."""
            payment = await self._read_payment(request, "settle")
            if isinstance(payment, JSONResponse):
                return payment
            result = await self.executor.settle_payment(payment)
            return JSONResponse(status_code=200, content=result.to_response())

    def _setup_supported_endpoint(self, path: str = "/supported") -> None:
        @self.get(path)
        async def supported():
            return {"kinds": self.supported_kinds()}

    def _setup_health_endpoint(self, path: str = "/health") -> None:
        @self.get(path)
        async def health():
            return {"status": "ok", "chains": len(self.registry)}


def create_app(executor: SettlementExecutor, registry: Optional[ChainRegistry] = None, **fastapi_kwargs) -> FacilitatorServer:
    """
    Build the facilitator FastAPI application.

    Example:
        registry = ChainRegistry.from_env()
        app = create_app(SettlementExecutor(registry, FacilitatorCredential.from_env()), registry)
    """
    return FacilitatorServer(executor, registry, **fastapi_kwargs)
