"""
New-Job Notification Worker
===========================

Tells drivers that a job was posted, by SMS (opted-in phone numbers) and
by push (registered device tokens).

Delivery contract
-----------------
* **Fire-and-forget** from job creation: ``schedule_new_job_notifications``
  spawns a task and returns immediately.  Nothing it does can fail or
  delay the job insert.
* **Best-effort fan-out**: every recipient is attempted independently via
  ``asyncio.gather(..., return_exceptions=True)``; one failure is logged
  and does not stop the others.
* **Explicit misconfiguration**: a missing Twilio setting raises
  ``NotificationConfigError`` naming what is absent, so callers can tell
  "service misconfigured" apart from "no recipients".

Lifecycle
---------
``start_notifier`` / ``stop_notifier`` are hooked to the app lifespan.
Stopping waits for in-flight fan-outs instead of cancelling them, then
closes the shared ``httpx`` client.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.gateways import ExpoPushGateway, TwilioSmsGateway
from src.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)

_client: httpx.AsyncClient | None = None
_pending: set[asyncio.Task] = set()


class NotificationConfigError(Exception):
    """A delivery service is missing required settings."""

    def __init__(self, message: str, **diagnostics: bool):
        super().__init__(message)
        self.diagnostics = diagnostics


@dataclass(frozen=True)
class NewJobNotice:
    job_id: str
    pickup: Optional[str] = None
    dropoff: Optional[str] = None


@dataclass(frozen=True)
class FanoutResult:
    recipients: int
    sent: int
    failed: int


# ── Public API ────────────────────────────────────────────────────────


async def start_notifier() -> None:
    global _client
    _client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
    logger.info("Notification worker started")


async def stop_notifier() -> None:
    global _client
    if _pending:
        logger.info("Waiting for %d notification task(s)", len(_pending))
        await asyncio.gather(*list(_pending), return_exceptions=True)
    if _client is not None:
        await _client.aclose()
        _client = None
    logger.info("Notification worker stopped")


def schedule_new_job_notifications(notice: NewJobNotice) -> None:
    """Spawn the SMS + push fan-out for *notice* without awaiting it."""
    task = asyncio.create_task(_notify_new_job(notice))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


def sms_text(pickup: Optional[str], dropoff: Optional[str]) -> str:
    return (
        f"New {settings.app_name} job:\n"
        f"Pickup: {pickup or 'N/A'}\n"
        f"Dropoff: {dropoff or 'N/A'}\n"
        "Log in now to claim it."
    )


def push_message(
    token: str, job_id: str, pickup: Optional[str], dropoff: Optional[str]
) -> dict[str, Any]:
    return {
        "to": token,
        "sound": "default",
        "title": f"New {settings.app_name} job available",
        "body": f"{pickup or 'Pickup unknown'} → {dropoff or 'Dropoff unknown'}",
        "data": {"jobId": job_id},
    }


def sms_gateway() -> TwilioSmsGateway:
    """Build the Twilio client from settings, or say exactly what is missing."""
    sid = settings.twilio_account_sid
    token = settings.twilio_auth_token
    from_number = settings.twilio_from_number
    if not sid or not token or not from_number:
        raise NotificationConfigError(
            "Missing Twilio configuration",
            hasSid=bool(sid),
            hasToken=bool(token),
            hasFrom=bool(from_number),
        )
    return TwilioSmsGateway(
        _http_client(), sid, token, from_number, api_base=settings.twilio_api_base
    )


async def notify_drivers_sms(
    session: AsyncSession,
    pickup: Optional[str],
    dropoff: Optional[str],
    gateway: TwilioSmsGateway | None = None,
) -> FanoutResult:
    """Text every opted-in driver.  Raises ``NotificationConfigError``."""
    gateway = gateway or sms_gateway()

    phones = await UserRepository(session).get_sms_recipients()
    if not phones:
        logger.info("No drivers with SMS enabled")
        return FanoutResult(recipients=0, sent=0, failed=0)

    text = sms_text(pickup, dropoff)
    results = await asyncio.gather(
        *(gateway.send(phone, text) for phone in phones),
        return_exceptions=True,
    )
    return _tally("SMS", phones, results)


async def notify_drivers_push(
    session: AsyncSession,
    notice: NewJobNotice,
    gateway: ExpoPushGateway | None = None,
) -> FanoutResult:
    gateway = gateway or ExpoPushGateway(_http_client(), settings.expo_push_url)

    tokens = await UserRepository(session).get_push_tokens()
    if not tokens:
        logger.info("No users with a push token, skipping push")
        return FanoutResult(recipients=0, sent=0, failed=0)

    results = await asyncio.gather(
        *(
            gateway.send(push_message(t, notice.job_id, notice.pickup, notice.dropoff))
            for t in tokens
        ),
        return_exceptions=True,
    )
    return _tally("Push", tokens, results)


# ── Internals ─────────────────────────────────────────────────────────


def _http_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=settings.notification_timeout_seconds)
    return _client


def _tally(channel: str, recipients: list[str], results: list) -> FanoutResult:
    failed = 0
    for recipient, outcome in zip(recipients, results):
        if isinstance(outcome, BaseException):
            failed += 1
            logger.warning("%s to %s failed: %s", channel, recipient, outcome)
    sent = len(recipients) - failed
    logger.info("%s fan-out: %d sent, %d failed", channel, sent, failed)
    return FanoutResult(recipients=len(recipients), sent=sent, failed=failed)


async def _notify_new_job(notice: NewJobNotice) -> None:
    """Background body: never raises.  Each channel reads in its own session."""
    async with async_session_factory() as session:
        try:
            await notify_drivers_sms(session, notice.pickup, notice.dropoff)
        except NotificationConfigError as exc:
            logger.warning("SMS skipped for job %s: %s %s",
                           notice.job_id, exc, exc.diagnostics)
        except Exception:
            logger.exception("SMS fan-out failed for job %s", notice.job_id)

    async with async_session_factory() as session:
        try:
            await notify_drivers_push(session, notice)
        except Exception:
            logger.exception("Push fan-out failed for job %s", notice.job_id)
