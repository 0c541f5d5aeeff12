"""
Facilitator Signing Credential

Wraps the facilitator's EVM private key so it can be handed to the settlement
engine without leaking into logs, reprs or exception messages. Only the
derived address is ever shown.

The key is read from process configuration (``FACILITATOR_PRIVATE_KEY``);
it is never accepted from request bodies.
"""

import os
from typing import Any, Mapping, Optional

import dotenv
from eth_account import Account
from eth_account.signers.local import LocalAccount

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()

PRIVATE_KEY_ENV_VAR = "FACILITATOR_PRIVATE_KEY"


class FacilitatorCredential:
    """
    The facilitator's signing identity.

    Attributes:
        address: Checksummed address derived from the key.

    Example:
        credential = FacilitatorCredential.from_env()
        print(credential)  # FacilitatorCredential(address=0xAbC..., key=***)
    """

    __slots__ = ("_account",)

    def __init__(self, private_key: str):
        """
        Args:
            private_key: 0x-prefixed (or bare) 32-byte hex key.

        Raises:
            ConfigurationError: If the key is empty or not a valid secp256k1 key.
        """
        if not private_key or not isinstance(private_key, str):
            raise ConfigurationError("Facilitator private key is empty")
        try:
            self._account: LocalAccount = Account.from_key(private_key.strip())
        except Exception as e:
            # the key itself must not end up in the message
            raise ConfigurationError(
                f"Facilitator private key is invalid ({type(e).__name__})"
            ) from None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FacilitatorCredential":
        """
        Load the credential from ``FACILITATOR_PRIVATE_KEY``.

        Raises:
            ConfigurationError: If the variable is unset or invalid.
        """
        env = os.environ if environ is None else environ
        private_key = env.get(PRIVATE_KEY_ENV_VAR)
        if not private_key:
            raise ConfigurationError(
                f"Private key not provided. Set the '{PRIVATE_KEY_ENV_VAR}' environment variable."
            )
        return cls(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def account(self) -> LocalAccount:
        """Signing account used by the submission layer."""
        return self._account

    def sign_transaction(self, transaction: dict) -> Any:
        return self._account.sign_transaction(transaction)

    def __repr__(self) -> str:
        return f"FacilitatorCredential(address={self.address}, key=***)"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FacilitatorCredential):
            return NotImplemented
        return self.address == other.address

    def __hash__(self) -> int:
        return hash(self.address)
