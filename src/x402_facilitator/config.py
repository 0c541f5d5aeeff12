"""
Process configuration.

Settings are read once at startup from the environment (and a ``.env`` file
when present). Per-chain RPC overrides are handled by
``ChainRegistry.from_env``; the signing key by ``FacilitatorCredential``.

Environment variables:
    FACILITATOR_PRIVATE_KEY          Facilitator key (required to settle)
    SETTLEMENT_CONFIRMATION_TIMEOUT  Seconds to wait for a receipt (120)
    SETTLEMENT_POLL_INTERVAL         Seconds between receipt polls (2)
    RPC_REQUEST_TIMEOUT              HTTP timeout for RPC calls (60)
    LOG_LEVEL                        Package log level (INFO)
"""

import os
from typing import Mapping, Optional

import dotenv
from pydantic import Field

from .schemas.bases import FrozenModel
from .engine.exceptions import ConfigurationError


class FacilitatorSettings(FrozenModel):
    """Runtime settings of a facilitator process."""

    confirmation_timeout: float = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=2.0, gt=0)
    request_timeout: int = Field(default=60, gt=0)
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FacilitatorSettings":
        """
        Read settings from the environment.

        Raises:
            ConfigurationError: A numeric setting does not parse or is not positive.
        """
        if environ is None:
            dotenv.load_dotenv()
            environ = os.environ

        def _number(name: str, default, cast):
            raw = (environ.get(name) or "").strip()
            if not raw:
                return default
            try:
                value = cast(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {raw!r}")
            return value

        return cls(
            confirmation_timeout=_number("SETTLEMENT_CONFIRMATION_TIMEOUT", 120.0, float),
            poll_interval=_number("SETTLEMENT_POLL_INTERVAL", 2.0, float),
            request_timeout=_number("RPC_REQUEST_TIMEOUT", 60, int),
            log_level=(environ.get("LOG_LEVEL") or "INFO").strip().upper(),
        )
