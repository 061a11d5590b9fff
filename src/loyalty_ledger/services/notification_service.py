"""Fire-and-forget notifications to account owners."""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from ..core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, account_id: int, event: str, payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier when no delivery channel is configured."""

    def notify(self, account_id: int, event: str, payload: dict[str, Any]) -> None:
        logger.info("notify account %s of %s: %s", account_id, event, payload)


class WebhookNotifier:
    """Posts events to an HTTP endpoint that fans them out to devices."""

    def __init__(self, url: str, *, timeout: float = 2.0, client: Optional[httpx.Client] = None) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout)

    def notify(self, account_id: int, event: str, payload: dict[str, Any]) -> None:
        response = self._client.post(
            self._url,
            json={"account_id": account_id, "event": event, "payload": payload},
        )
        response.raise_for_status()


def build_notifier(settings: Optional[Settings] = None) -> Notifier:
    settings = settings or get_settings()
    if settings.notification_webhook_url:
        return WebhookNotifier(
            settings.notification_webhook_url,
            timeout=settings.notification_timeout_seconds,
        )
    return LoggingNotifier()


def safe_notify(notifier: Optional[Notifier], account_id: int, event: str, payload: dict[str, Any]) -> bool:
    """Deliver a notification without letting its failure escape."""

    if notifier is None:
        return False
    try:
        notifier.notify(account_id, event, payload)
        return True
    except Exception:
        logger.exception("notification %s to account %s failed", event, account_id)
        return False
