# referral_hub/services/notify.py
import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional, Set

from .email_service import NotificationResult

logger = logging.getLogger(__name__)

NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "10"))

# Strong refs so pending sends are not garbage collected mid-flight
_background: Set[asyncio.Task] = set()

OnResult = Callable[[NotificationResult], Awaitable[None]]


async def send_guarded(notifier, address: str, subject: str, body: str, **kwargs) -> NotificationResult:
    """
    Await one send with a timeout. Every failure is folded into the result.
    """
    try:
        result = await asyncio.wait_for(
            notifier.send(address, subject, body, **kwargs), NOTIFY_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError:
        result = NotificationResult(success=False, error="Notification timed out")
    except Exception as e:
        logger.exception("Notifier raised while sending to %s", address)
        result = NotificationResult(success=False, error=str(e))

    if not result.success:
        logger.warning("Notification to %s failed: %s", address, result.error)
    return result


def send_bg(
    notifier,
    address: str,
    subject: str,
    body: str,
    on_result: Optional[OnResult] = None,
    **kwargs,
) -> Optional[asyncio.Task]:
    """
    Fire-and-forget send so the caller returns as soon as its writes commit.
    Call only after the ledger transition has been committed.
    """
    if notifier is None or not address:
        return None

    async def _run() -> NotificationResult:
        result = await send_guarded(notifier, address, subject, body, **kwargs)
        if on_result is not None:
            try:
                await on_result(result)
            except Exception:
                logger.exception("Recording notification outcome for %s failed", address)
        return result

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop (scripts). Fall back to a direct run.
        asyncio.run(_run())
        return None

    task = loop.create_task(_run())
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


async def drain() -> None:
    """
    Wait for pending background sends (shutdown, tests).
    """
    while _background:
        await asyncio.gather(*list(_background), return_exceptions=True)
