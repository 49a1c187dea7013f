"""
Confirmation Tracker

Polls the ledger for the finality of a submitted identifier with bounded
retries and exponential backoff.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..recovery.errors import (
    ConfirmationTimeoutError,
    ErrorCategory,
    InvalidConfigurationError,
    OperationFailedError,
    RecoverableError,
    RpcError,
    classify_error,
)
from .models import (
    ConfirmationAttempt,
    ConfirmationOutcome,
    ConfirmationResult,
    ConfirmationState,
    ConfirmationStatus,
    RetryOptions,
)

logger = logging.getLogger(__name__)

StatusQuery = Callable[[str], Awaitable[ConfirmationStatus]]

# Poll failures that mean "not observed yet"; the next poll backs off as usual
_TRANSIENT_POLL_CATEGORIES = {ErrorCategory.NETWORK, ErrorCategory.RATE_LIMIT}


class ConfirmationTracker:
    """
    Awaits finality of a submitted operation.

    A call to `confirm()` ends in exactly one of:
    - ConfirmationResult with outcome CONFIRMED
    - ConfirmationResult with outcome CANCELLED (cancel_event was set)
    - OperationFailedError: rejected on-chain, terminal, do not retry
    - ConfirmationTimeoutError: not observed in time, the operation may
      still land; the identifier is preserved on the error

    Polls within one call are strictly sequential. The tracker keeps no
    per-call state, so concurrent calls for different identifiers are
    independent.
    """

    def __init__(
        self,
        get_status: Optional[StatusQuery] = None,
        options: Optional[RetryOptions] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self._get_status = get_status
        self.options = options or RetryOptions()
        self._sleep = sleep or asyncio.sleep

    async def confirm(
        self,
        identifier: str,
        options: Optional[RetryOptions] = None,
        *,
        get_status: Optional[StatusQuery] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ConfirmationResult:
        query = get_status or self._get_status
        if query is None:
            raise InvalidConfigurationError("No confirmation status query configured", setting="get_status")
        if not identifier:
            raise InvalidConfigurationError("Cannot confirm an empty identifier", setting="identifier")

        opts = options or self.options
        attempts: List[ConfirmationAttempt] = []
        attempt = 0
        delay_ms = opts.interval_ms

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return self._cancelled(identifier, attempts)

            record = ConfirmationAttempt(attempt_number=attempt + 1, identifier=identifier)
            attempts.append(record)

            status = await self._query(query, identifier, record)

            if status.state == ConfirmationState.SUCCESS:
                record.outcome = ConfirmationOutcome.CONFIRMED
                logger.info(f"[confirm] {identifier} confirmed after {len(attempts)} polls")
                return ConfirmationResult(
                    identifier=identifier,
                    outcome=ConfirmationOutcome.CONFIRMED,
                    status=status,
                    attempts=attempts,
                )

            if status.state == ConfirmationState.FAILURE:
                record.outcome = ConfirmationOutcome.FAILED
                logger.error(f"[confirm] {identifier} failed on-chain: {status.detail}")
                raise OperationFailedError(identifier, status.detail)

            if attempt >= opts.max_retries:
                record.outcome = ConfirmationOutcome.TIMEOUT
                logger.warning(f"[confirm] {identifier} still unconfirmed after {len(attempts)} polls")
                raise ConfirmationTimeoutError(identifier, attempts=len(attempts))

            record.next_delay_ms = delay_ms
            if await self._pause(delay_ms / 1000, cancel_event):
                return self._cancelled(identifier, attempts)

            delay_ms = opts.next_delay(delay_ms)
            attempt += 1

    async def _query(
        self,
        query: StatusQuery,
        identifier: str,
        record: ConfirmationAttempt,
    ) -> ConfirmationStatus:
        """Run one status query; network failures and rate limits count as pending."""
        try:
            return await query(identifier)
        except (RecoverableError, RpcError) as e:
            context = classify_error(e)
            if context.category not in _TRANSIENT_POLL_CATEGORIES:
                raise
            record.error = str(e)
            logger.warning(f"[confirm] Status poll {record.attempt_number} for {identifier} failed: {e}")
            return ConfirmationStatus.pending()

    async def _pause(self, delay_s: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for `delay_s`; returns True if cancel_event fired first."""
        if cancel_event is None:
            await self._sleep(delay_s)
            return False

        sleeper = asyncio.ensure_future(self._sleep(delay_s))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return cancel_event.is_set()

    @staticmethod
    def _cancelled(identifier: str, attempts: List[ConfirmationAttempt]) -> ConfirmationResult:
        if attempts:
            attempts[-1].outcome = ConfirmationOutcome.CANCELLED
        logger.info(f"[confirm] Polling for {identifier} cancelled after {len(attempts)} polls")
        return ConfirmationResult(
            identifier=identifier,
            outcome=ConfirmationOutcome.CANCELLED,
            attempts=attempts,
        )
