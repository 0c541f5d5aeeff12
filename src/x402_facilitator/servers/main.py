"""
Run the facilitator HTTP service.

    python -m x402_facilitator.servers.main --host 0.0.0.0 --port 8402
"""

import argparse

import uvicorn

from .apps import FacilitatorServer, create_app
from ..adapters.evm.chains import ChainRegistry
from ..adapters.evm.credentials import FacilitatorCredential
from ..config import FacilitatorSettings
from ..engine.executors import SettlementExecutor
from ..utils import logger, setup_logger


def build_app(settings: FacilitatorSettings = None) -> FacilitatorServer:
    """Wire registry, credential and executor from process configuration."""
    settings = settings or FacilitatorSettings.from_env()
    registry = ChainRegistry.from_env()
    credential = FacilitatorCredential.from_env()
    executor = SettlementExecutor(
        registry,
        credential=credential,
        confirmation_timeout=settings.confirmation_timeout,
        poll_interval=settings.poll_interval,
        request_timeout=settings.request_timeout,
    )
    logger.info("Facilitator %s serving %d chains", credential.address, len(registry))
    return create_app(executor, registry)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="x402 facilitator settlement service")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8402)
    args = parser.parse_args(argv)

    settings = FacilitatorSettings.from_env()
    setup_logger(settings.log_level)
    uvicorn.run(build_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
