"""
dispatcher.py — Concurrent per-contact fan-out through one provider.

═══════════════════════════════════════════════════════════════════════════
FAN-OUT & FAILURE ISOLATION
═══════════════════════════════════════════════════════════════════════════

    phones ──┬── send(phone₁) ──► ProviderOutcome(success=True,  id=…)
             ├── send(phone₂) ──► ProviderOutcome(success=False, EXCEPTION)
             └── send(phone₃) ──► ProviderOutcome(success=False, TIMEOUT)
                       │
                       ▼
               DispatchResult(sent=1, failed=2, outcomes=[…3…])

    • One send per phone, all started together (asyncio.gather).
    • DISPATCH_MAX_CONCURRENCY bounds in-flight sends with a semaphore.
    • Each send is wrapped in asyncio.wait_for(PROVIDER_SEND_TIMEOUT).
    • A failure of one send never affects another: every exception becomes
      an outcome with error_code EXCEPTION / TIMEOUT / <provider code>.
    • A provider without credentials is not called at all: the channel is
      reported as skipped and every phone counts as failed.

In-flight sends are shielded: cancelling the awaiting request does not
abort messages that are already on their way.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from backend.app.core.config import settings
from backend.app.core.errors import ProviderRejected, ProviderUnavailable
from backend.app.core.logging_config import mask_phone
from backend.app.emergency.channels.base import MessagingProvider
from backend.app.emergency.models import DispatchResult, ProviderOutcome

logger = logging.getLogger(__name__)

ERROR_TIMEOUT = "TIMEOUT"
ERROR_EXCEPTION = "EXCEPTION"


class NotificationDispatcher:
    """Sends one message body to many phones through one provider."""

    def __init__(
        self,
        *,
        send_timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.send_timeout = send_timeout or settings.PROVIDER_SEND_TIMEOUT
        self.max_concurrency = (
            max_concurrency if max_concurrency is not None
            else settings.DISPATCH_MAX_CONCURRENCY
        )
        self._in_flight: Set[asyncio.Future] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def drain(self) -> None:
        """Wait for sends that outlived their (cancelled) caller."""
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    async def dispatch(
        self,
        phones: Sequence[str],
        body: str,
        provider: MessagingProvider,
    ) -> DispatchResult:
        """
        Send ``body`` to every normalized phone in ``phones``.

        Returns
        -------
        DispatchResult
            ``sent_count + failed_count == len(phones)`` always holds.
        """
        if not provider.is_initialized:
            unavailable = ProviderUnavailable(provider.name, provider.not_initialized_reason)
            logger.warning(
                "[%s] Skipping %d sends: %s",
                provider.name, len(phones), unavailable.message,
                extra={"provider": provider.name, "channel": provider.channel.value},
            )
            return DispatchResult(
                provider=provider.name,
                channel=provider.channel,
                failed_count=len(phones),
                skipped_reason=unavailable.message,
            )

        task = asyncio.ensure_future(self._fan_out(list(phones), body, provider))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return await asyncio.shield(task)

    async def _fan_out(
        self,
        phones: List[str],
        body: str,
        provider: MessagingProvider,
    ) -> DispatchResult:
        start = time.perf_counter()
        semaphore = (
            asyncio.Semaphore(self.max_concurrency)
            if self.max_concurrency and self.max_concurrency > 0 else None
        )

        outcomes = await asyncio.gather(
            *(self._send_one(phone, body, provider, semaphore) for phone in phones)
        )

        sent = sum(1 for o in outcomes if o.success)
        result = DispatchResult(
            provider=provider.name,
            channel=provider.channel,
            sent_count=sent,
            failed_count=len(outcomes) - sent,
            outcomes=list(outcomes),
        )

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "[%s] Dispatch complete: %d sent, %d failed (%.0fms)",
            provider.name, result.sent_count, result.failed_count, duration_ms,
            extra={
                "provider": provider.name,
                "channel": provider.channel.value,
                "contact_count": len(phones),
                "duration_ms": duration_ms,
            },
        )
        return result

    async def _send_one(
        self,
        phone: str,
        body: str,
        provider: MessagingProvider,
        semaphore: Optional[asyncio.Semaphore],
    ) -> ProviderOutcome:
        try:
            if semaphore is not None:
                async with semaphore:
                    message_id = await asyncio.wait_for(
                        provider.send(phone, body), self.send_timeout,
                    )
            else:
                message_id = await asyncio.wait_for(
                    provider.send(phone, body), self.send_timeout,
                )
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] Send to %s timed out after %.1fs",
                provider.name, mask_phone(phone), self.send_timeout,
            )
            return self._failure(phone, provider, ERROR_TIMEOUT,
                                 f"No response within {self.send_timeout}s")
        except ProviderRejected as e:
            logger.warning(
                "[%s] Send to %s rejected: %s %s",
                provider.name, mask_phone(phone), e.provider_code, e.provider_message,
            )
            return self._failure(phone, provider, e.provider_code, e.provider_message)
        except ProviderUnavailable as e:
            # Credentials dropped between the channel check and this send
            return self._failure(phone, provider, e.error_code, e.message)
        except Exception as e:
            logger.error(
                "[%s] Send to %s failed: %s",
                provider.name, mask_phone(phone), e,
            )
            return self._failure(phone, provider, ERROR_EXCEPTION, str(e) or type(e).__name__)

        return ProviderOutcome(
            contact_phone=phone,
            provider=provider.name,
            channel=provider.channel,
            success=True,
            provider_message_id=message_id or None,
        )

    @staticmethod
    def _failure(
        phone: str,
        provider: MessagingProvider,
        code: str,
        message: str,
    ) -> ProviderOutcome:
        return ProviderOutcome(
            contact_phone=phone,
            provider=provider.name,
            channel=provider.channel,
            success=False,
            error_code=code,
            error_message=message,
        )


# ═══════════════════════════════════════════════════════════════════════════
# Cross-channel aggregation
# ═══════════════════════════════════════════════════════════════════════════

def tally_contacts(
    phones: Sequence[str],
    results: Iterable[DispatchResult],
) -> Tuple[int, int]:
    """
    (sent, failed) per contact across all channels.

    A contact is sent when any channel delivered to it, so the pair always
    sums to ``len(phones)`` however many channels ran.
    """
    reached: Dict[str, bool] = {phone: False for phone in phones}
    for result in results:
        for outcome in result.outcomes:
            if outcome.success and outcome.contact_phone in reached:
                reached[outcome.contact_phone] = True
    sent = sum(1 for ok in reached.values() if ok)
    return sent, len(reached) - sent
