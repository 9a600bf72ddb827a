"""Per-subscriber processors and the eligibility rules the content jobs use.

The real content generation and Telegram delivery live in other services;
beacon reaches them through webhooks. Anything matching the protocols below
can be plugged into the Worker instead.
"""

from datetime import datetime, timedelta
from typing import Protocol

import httpx
import pendulum

from beacon.locks import LockRegistry
from beacon.otel import get_logger
from beacon.subscribers import Subscriber

log = get_logger()


class ContentProcessor(Protocol):
    async def process(self, subscriber: Subscriber, force: bool = False) -> None:
        ...


class NotificationProcessor(Protocol):
    async def process(self, subscriber: Subscriber, locks: LockRegistry) -> None:
        ...


# === ELIGIBILITY ===


def _age(then: datetime, now: datetime | None) -> float:
    now = pendulum.now("UTC") if now is None else pendulum.instance(now)
    return now.timestamp() - then.timestamp()


def needs_scheduled_update(subscriber: Subscriber, refresh: timedelta, now: datetime | None = None) -> bool:
    """Never processed, or the last job is older than the refresh window."""
    if subscriber.last_job is None:
        return True
    return _age(subscriber.last_job, now) >= refresh.total_seconds()


def needs_immediate_update(subscriber: Subscriber) -> bool:
    """Preferences changed since the last job ran."""
    if subscriber.preference_update is None:
        return False
    if subscriber.last_job is None:
        return True
    return subscriber.preference_update > subscriber.last_job


def telegram_cooldown_elapsed(subscriber: Subscriber, cooldown: timedelta, now: datetime | None = None) -> bool:
    if subscriber.tele_last_sent is None:
        return True
    return _age(subscriber.tele_last_sent, now) >= cooldown.total_seconds()


# === WEBHOOK PROCESSORS ===


class WebhookContentProcessor:
    """Hands a subscriber to the content service. Raises on non-2xx."""

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self.client = client

    async def process(self, subscriber: Subscriber, force: bool = False) -> None:
        response = await self.client.post(self.url, json={"subscriber": subscriber.row, "force": force})
        response.raise_for_status()


class WebhookTelegramProcessor:
    """Sends a Telegram digest through the notification service.

    Skips subscribers another job is already processing, and subscribers
    whose last digest went out within the cooldown.
    """

    def __init__(self, url: str, client: httpx.AsyncClient, cooldown: timedelta):
        self.url = url
        self.client = client
        self.cooldown = cooldown

    async def process(self, subscriber: Subscriber, locks: LockRegistry) -> None:
        if not telegram_cooldown_elapsed(subscriber, self.cooldown):
            return
        if not locks.try_acquire(subscriber.id):
            log.info(f"[Telegram] Skipping {subscriber.id}, already processing")
            return
        try:
            response = await self.client.post(
                self.url,
                json={"subscriber": subscriber.row, "telegram_id": subscriber.telegram_id},
            )
            response.raise_for_status()
        finally:
            locks.release(subscriber.id)
