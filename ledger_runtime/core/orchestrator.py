"""
Transaction orchestrator.

Handles the full lifecycle of a ledger write:
- Amount parsing and conversion
- Endpoint selection with failover
- Throttled, health-tracked RPC calls
- Submission and confirmation polling
"""

import asyncio
import functools
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ..cache import CacheTTL, TTLCache, create_cache_key, get_cached
from ..config import Settings, settings
from ..logging_config import log_context
from ..providers.base import LedgerRpc, Signer
from .amounts import HumanAmount, convert_amount, parse_token_amount
from .confirmation import ConfirmationResult, ConfirmationStatus, ConfirmationTracker, RetryOptions
from .health import EndpointHealthMonitor, HealthMonitorConfig
from .recovery.errors import (
    ConfirmationInterruptedError,
    ConfirmationTimeoutError,
    InvalidConfigurationError,
    OperationFailedError,
    to_runtime_error,
)
from .throttle import Throttle

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientFactory = Callable[[str], LedgerRpc]
PayloadBuilder = Callable[[Any, int], Any]


@dataclass(frozen=True)
class TransferPlan:
    """Pre-resolved conversion parameters for a write."""
    source_decimals: int
    target_decimals: int
    rate_bps: int = 10_000


@dataclass
class TransferReceipt:
    """Confirmed (or cancelled) write."""
    identifier: str
    endpoint: str
    source_amount: int
    target_amount: int
    confirmation: ConfirmationResult

    @property
    def confirmed(self) -> bool:
        return self.confirmation.confirmed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "endpoint": self.endpoint,
            "sourceAmount": str(self.source_amount),
            "targetAmount": str(self.target_amount),
            "confirmation": self.confirmation.to_dict(),
        }


class TransactionOrchestrator:
    """
    Top-level entry point for ledger reads and writes.

    Responsibilities:
    - Convert human amounts into target base units
    - Route every RPC call through the shared throttle
    - Send calls to the endpoint the health monitor prefers
    - Feed real traffic outcomes back into endpoint health
    - Await finality through the confirmation tracker

    All collaborators are injected; share a monitor, throttle or cache by
    passing the same instance to several orchestrators.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        signer: Signer,
        monitor: EndpointHealthMonitor,
        throttle: Optional[Throttle] = None,
        tracker: Optional[ConfirmationTracker] = None,
        cache: Optional[TTLCache] = None,
        cache_ttl: Optional[CacheTTL] = None,
    ):
        self.client_factory = client_factory
        self.signer = signer
        self.monitor = monitor
        self.throttle = throttle or Throttle()
        self.tracker = tracker or ConfirmationTracker()
        self.cache = cache if cache is not None else TTLCache()
        self.cache_ttl = cache_ttl or CacheTTL.from_settings()
        self._clients: Dict[str, LedgerRpc] = {}

    def _client_for(self, endpoint: str) -> LedgerRpc:
        client = self._clients.get(endpoint)
        if client is None:
            client = self.client_factory(endpoint)
            self._clients[endpoint] = client
        return client

    async def aclose(self) -> None:
        """Close every RPC client this orchestrator opened."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()

    async def _call(self, endpoint: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Throttle, run and health-track one RPC call; raw failures become typed errors."""
        await self.throttle.wait()
        try:
            return await self.monitor.track(endpoint, operation)
        except Exception as e:
            converted = to_runtime_error(e, endpoint)
            if converted is e:
                raise
            raise converted from e

    def quote(self, human_amount: HumanAmount, plan: TransferPlan) -> Dict[str, int]:
        """Base units before and after conversion, without touching the network."""
        source_amount = parse_token_amount(human_amount, plan.source_decimals)
        target_amount = convert_amount(
            source_amount,
            plan.rate_bps,
            plan.source_decimals,
            plan.target_decimals,
        )
        return {"source_amount": source_amount, "target_amount": target_amount}

    async def transfer(
        self,
        human_amount: HumanAmount,
        plan: TransferPlan,
        build_payload: PayloadBuilder,
        options: Optional[RetryOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TransferReceipt:
        """
        Convert, build, sign, submit and confirm a transfer.

        Args:
            human_amount: Amount in source token units ("12.34")
            plan: Decimals and exchange rate for the conversion
            build_payload: Called with (latest reference, target base units);
                returns the unsigned payload, or an awaitable of it
            options: Confirmation polling override
            cancel_event: Set to stop confirmation polling early

        Returns:
            TransferReceipt with the confirmation outcome

        Raises:
            AmountOverflowError / InvalidAmountError: Bad input, nothing sent
            RateLimitedError / NetworkError: Raised before submission
                succeeded; nothing was broadcast
            OperationFailedError: Rejected on-chain; do not resubmit blindly
            ConfirmationTimeoutError: Submitted, finality not yet observed
            ConfirmationInterruptedError: Submitted, polling stopped on an
                unexpected error

        Every error raised after submission carries `identifier`.
        """
        amounts = self.quote(human_amount, plan)
        source_amount = amounts["source_amount"]
        target_amount = amounts["target_amount"]

        endpoint = self.monitor.get_healthy_endpoint()
        client = self._client_for(endpoint)
        with log_context(endpoint=endpoint) as bind_log:
            reference = await self._call(endpoint, client.get_latest_reference)

            unsigned = build_payload(reference, target_amount)
            if inspect.isawaitable(unsigned):
                unsigned = await unsigned
            signed = await self.signer.sign(unsigned)

            identifier = await self._call(endpoint, lambda: client.submit(signed))
            bind_log(identifier=identifier)
            logger.info(
                f"[orchestrator] Submitted {identifier} via {endpoint} "
                f"({source_amount} -> {target_amount} base units)"
            )

            async def query_status(ident: str) -> ConfirmationStatus:
                return await self._call(endpoint, lambda: client.get_confirmation_status(ident))

            try:
                confirmation = await self.tracker.confirm(
                    identifier,
                    options,
                    get_status=query_status,
                    cancel_event=cancel_event,
                )
            except (ConfirmationTimeoutError, OperationFailedError):
                raise
            except Exception as e:
                logger.error(f"[orchestrator] Confirmation of {identifier} interrupted: {e}")
                raise ConfirmationInterruptedError(identifier, str(e) or type(e).__name__) from e

        return TransferReceipt(
            identifier=identifier,
            endpoint=endpoint,
            source_amount=source_amount,
            target_amount=target_amount,
            confirmation=confirmation,
        )

    async def get_balance(self, account_id: str, use_cache: bool = True) -> int:
        """Account balance in base units, cached for the balances TTL tier."""
        endpoint = self.monitor.get_healthy_endpoint()
        client = self._client_for(endpoint)
        key = create_cache_key("balance", account_id)
        ttl = self.cache_ttl.BALANCES

        async def fetch() -> int:
            return await self._call(endpoint, lambda: client.get_account_balance(account_id))

        if not use_cache:
            balance = await fetch()
            self.cache.set(key, balance, ttl)
            return balance

        return await get_cached(self.cache, key, fetch, ttl)


def build_orchestrator(
    signer: Signer,
    client_factory: Optional[ClientFactory] = None,
    config: Optional[Settings] = None,
) -> TransactionOrchestrator:
    """
    Wire an orchestrator from settings.

    Endpoint resolution: `rpc_primary_url` (or SOLANA_RPC_URL), then
    `rpc_backup_urls` in order. The monitor is returned unstarted; call
    `orchestrator.monitor.start()` from inside the event loop.
    """
    from ..providers.solana import SolanaRpcClient, solana_probe

    config = config or settings
    endpoints = config.endpoints
    if not endpoints:
        raise InvalidConfigurationError("No RPC endpoint configured", setting="rpc_primary_url")
    if not config.has_backups:
        logger.warning(f"[orchestrator] No backup endpoints configured; failover is disabled for {endpoints[0]}")

    timeout_s = config.request_timeout_seconds
    if client_factory is None:
        client_factory = functools.partial(SolanaRpcClient, commitment=config.rpc_commitment, timeout_s=timeout_s)

    monitor = EndpointHealthMonitor(
        primary=endpoints[0],
        backups=endpoints[1:],
        probe=functools.partial(solana_probe, timeout_s=timeout_s, commitment=config.rpc_commitment),
        config=HealthMonitorConfig.from_settings(config),
    )
    tracker = ConfirmationTracker(options=RetryOptions.from_settings(config))

    return TransactionOrchestrator(
        client_factory=client_factory,
        signer=signer,
        monitor=monitor,
        throttle=Throttle(config.throttle_min_delay_ms),
        tracker=tracker,
        cache=TTLCache(default_ttl=config.cache_default_ttl_ms),
        cache_ttl=CacheTTL.from_settings(config),
    )
