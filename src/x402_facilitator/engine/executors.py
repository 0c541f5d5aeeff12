"""
Settlement execution engine.

``SettlementExecutor`` turns a canonical authorization into on-chain
transactions paid for by the facilitator. Preflight runs in a fixed order and
stops at the first failure:

    1. chain is configured                       (no RPC)
    2. spender / recipient identity, signature   (no RPC)
    3. fee estimate and facilitator gas balance  (RPC, nothing submitted)

The selected strategy then submits and confirms its transactions. ``settle``
never raises; every failure is returned as ``SettlementResult(success=False)``.
``verify`` runs the same preflight and stops before anything is submitted.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from eth_utils import is_address
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from web3 import AsyncWeb3

from .exceptions import ConfigurationError, InsufficientGasBalanceError, ValidationError
from .reporter import ResultReporter
from .states import SettlementRun, SettlementState
from .strategies import DEFAULT_STRATEGIES, SettlementContext, SettlementStrategy
from ..adapters.evm.chains import ChainConfig, ChainRegistry
from ..adapters.evm.credentials import FacilitatorCredential
from ..adapters.evm.fees import FeeEstimator
from ..adapters.evm.schemas import Authorization, EVMECDSASignature, FeeQuote
from ..adapters.evm.signatures import decompose_signature
from ..adapters.evm.submitter import TransactionSubmitter
from ..schemas.results import NormalizedPayment, SettlementResult, VerificationResult
from ..utils import logger

_AUTHORIZATION_ADAPTER = TypeAdapter(Authorization)


def _authorization_field(authorization: Any, name: str) -> str:
    if isinstance(authorization, dict):
        value = authorization.get(name)
    else:
        value = getattr(authorization, name, None)
    return "" if value is None else str(value)


@dataclass
class _Preflight:
    """Everything a passed preflight resolved for the strategy to run."""

    chain: ChainConfig
    authorization: Authorization
    strategy: SettlementStrategy
    credential: FacilitatorCredential
    signature: EVMECDSASignature
    web3: AsyncWeb3
    fees: FeeQuote


class SettlementExecutor:
    """
    Settles signed authorizations on any chain of a ``ChainRegistry``.

    Example:
        executor = SettlementExecutor(
            ChainRegistry.from_env(),
            credential=FacilitatorCredential.from_env(),
        )
        result = await executor.settle(
            chain_id=84532,
            token_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
            authorization=PermitAuthorization(...),
            signature="0x...",
            recipient="0x...",
        )
    """

    def __init__(
        self,
        registry: ChainRegistry,
        credential: Optional[FacilitatorCredential] = None,
        fee_estimator: Optional[FeeEstimator] = None,
        submitter: Optional[TransactionSubmitter] = None,
        reporter: Optional[ResultReporter] = None,
        confirmation_timeout: float = 120.0,
        poll_interval: float = 2.0,
        request_timeout: int = 60,
        strategies: Optional[Mapping[str, SettlementStrategy]] = None,
    ):
        """
        Args:
            registry: Immutable chain configuration table.
            credential: Facilitator signing identity. May be supplied per call
                instead.
            fee_estimator: EIP-1559 fee source (default ``FeeEstimator()``).
            submitter: Shared nonce-serializing submitter.
            reporter: Phase logger and result builder.
            confirmation_timeout: Seconds to wait for each receipt.
            poll_interval: Seconds between receipt polls.
            request_timeout: HTTP timeout for RPC requests.
            strategies: Strategy table keyed by authorization tag.
        """
        self.registry = registry
        self.credential = credential
        self.fee_estimator = fee_estimator or FeeEstimator()
        self.submitter = submitter or TransactionSubmitter()
        self.reporter = reporter or ResultReporter()
        self.confirmation_timeout = confirmation_timeout
        self.poll_interval = poll_interval
        self._request_timeout = request_timeout
        self._strategies: Dict[str, SettlementStrategy] = dict(strategies or DEFAULT_STRATEGIES)

    def _get_web3_instance(self, chain: ChainConfig) -> AsyncWeb3:
        """
        Create an AsyncWeb3 instance for ``chain``'s configured RPC endpoint.
        """
        return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            chain.rpc_url,
            request_kwargs={"timeout": self._request_timeout}
        ))

    @staticmethod
    def _coerce_authorization(authorization: Union[Authorization, Dict[str, Any]]) -> Authorization:
        if isinstance(authorization, dict):
            try:
                return _AUTHORIZATION_ADAPTER.validate_python(authorization)
            except PydanticValidationError as e:
                first = e.errors()[0]
                field = ".".join(str(part) for part in first.get("loc", ()))
                raise ValidationError(
                    f"Invalid authorization: {first.get('msg')}",
                    field=f"authorization.{field}" if field else "authorization",
                ) from None
        return authorization

    def _strategy_for(self, authorization: Any) -> SettlementStrategy:
        strategy = self._strategies.get(getattr(authorization, "strategy", None))
        if strategy is None:
            raise ValidationError(
                f"Unsupported authorization strategy: {getattr(authorization, 'strategy', None)!r}",
                field="authorization.strategy",
            )
        return strategy

    async def _preflight(
        self,
        chain_id: int,
        token_address: str,
        authorization: Union[Authorization, Dict[str, Any]],
        signature: str,
        recipient: str,
        credential: Optional[FacilitatorCredential],
    ) -> _Preflight:
        chain = self.registry.lookup(chain_id)
        authorization = self._coerce_authorization(authorization)
        strategy = self._strategy_for(authorization)

        credential = credential or self.credential
        if credential is None:
            raise ConfigurationError("No facilitator credential configured")
        if not isinstance(token_address, str) or not is_address(token_address):
            raise ValidationError(f"Invalid token address: {token_address!r}", field="token_address")
        if not isinstance(recipient, str) or not is_address(recipient):
            raise ValidationError(f"Invalid recipient address: {recipient!r}", field="recipient")

        strategy.check_authorization(authorization, credential, recipient)
        signature_parts = decompose_signature(signature)

        web3 = self._get_web3_instance(chain)
        fees = await self.fee_estimator.estimate(web3)
        required = fees.worst_case_cost(strategy.gas_budget)
        available = int(await web3.eth.get_balance(credential.address))
        if available < required:
            raise InsufficientGasBalanceError(required=required, available=available)
        logger.debug(
            "Preflight passed (chain=%s, strategy=%s, gas_budget=%s, required=%s, available=%s)",
            chain.chain_id, strategy.name, strategy.gas_budget, required, available,
        )

        return _Preflight(
            chain=chain,
            authorization=authorization,
            strategy=strategy,
            credential=credential,
            signature=signature_parts,
            web3=web3,
            fees=fees,
        )

    async def settle(
        self,
        chain_id: int,
        token_address: str,
        authorization: Union[Authorization, Dict[str, Any]],
        signature: str,
        recipient: str,
        credential: Optional[FacilitatorCredential] = None,
    ) -> SettlementResult:
        """
        Settle one signed authorization.

        Args:
            chain_id: EIP-155 chain ID.
            token_address: ERC-20 token contract.
            authorization: Canonical authorization (or its dict form).
            signature: Packed 65-byte signature, 0x-prefixed hex.
            recipient: Address that receives the funds.
            credential: Overrides the executor's facilitator credential.

        Returns:
            SettlementResult: Structured outcome; never raises.
        """
        run = SettlementRun(
            chain_id=chain_id,
            strategy=_authorization_field(authorization, "strategy") or "unknown",
            owner=_authorization_field(authorization, "owner"),
            recipient=recipient,
            value=_authorization_field(authorization, "value"),
        )

        try:
            checked = await self._preflight(
                chain_id, token_address, authorization, signature, recipient, credential,
            )
            self.reporter.transition(
                run, SettlementState.PREFLIGHT_CHECKED,
                facilitator=checked.credential.address,
                max_fee_per_gas=checked.fees.max_fee_per_gas,
            )

            context = SettlementContext(
                web3=checked.web3,
                chain=checked.chain,
                token=token_address,
                recipient=recipient,
                signature=checked.signature,
                fees=checked.fees,
                credential=checked.credential,
                submitter=self.submitter,
                reporter=self.reporter,
                run=run,
                confirmation_timeout=self.confirmation_timeout,
                poll_interval=self.poll_interval,
            )
            await checked.strategy.execute(checked.authorization, context)
            return self.reporter.succeeded(run)
        except Exception as e:
            return self.reporter.failed(run, e)

    async def verify(
        self,
        chain_id: int,
        token_address: str,
        authorization: Union[Authorization, Dict[str, Any]],
        signature: str,
        recipient: str,
        credential: Optional[FacilitatorCredential] = None,
    ) -> VerificationResult:
        """
        Run the settlement preflight without submitting anything.

        Takes the same arguments as :meth:`settle`. The only RPC calls are the
        fee estimate and the facilitator balance read.

        Returns:
            VerificationResult: ``is_valid`` plus the failure kind; never raises.
        """
        strategy = _authorization_field(authorization, "strategy") or None
        payer = _authorization_field(authorization, "owner") or None
        try:
            checked = await self._preflight(
                chain_id, token_address, authorization, signature, recipient, credential,
            )
        except Exception as e:
            return self.reporter.rejected(chain_id, strategy, payer, e)
        return self.reporter.verified(chain_id, checked.strategy.name, checked.authorization.owner)

    async def settle_payment(
        self,
        payment: NormalizedPayment,
        credential: Optional[FacilitatorCredential] = None,
    ) -> SettlementResult:
        """
        Settle a payment produced by the payload normalizer.
        """
        return await self.settle(
            chain_id=payment.chain_id,
            token_address=payment.token,
            authorization=payment.authorization,
            signature=payment.signature,
            recipient=payment.recipient,
            credential=credential,
        )

    async def verify_payment(
        self,
        payment: NormalizedPayment,
        credential: Optional[FacilitatorCredential] = None,
    ) -> VerificationResult:
        return await self.verify(
            chain_id=payment.chain_id,
            token_address=payment.token,
            authorization=payment.authorization,
            signature=payment.signature,
            recipient=payment.recipient,
            credential=credential,
        )
