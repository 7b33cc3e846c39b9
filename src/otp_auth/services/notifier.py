"""SMS notifier — delivers OTP messages to mobile numbers.

``HttpSmsNotifier`` talks to a generic HTTP SMS gateway. When no gateway is
configured, ``LogNotifier`` stands in and only logs the outgoing message,
which is how codes are read during local development.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class DeliveryFailed(Exception):
    """The message could not be handed to the delivery channel."""


class Notifier(Protocol):
    async def send(self, identifier: str, message: str) -> None:
        """Deliver *message* to *identifier*; raise ``DeliveryFailed`` on error."""


class HttpSmsNotifier:
    """Async HTTP wrapper around an SMS gateway's send endpoint."""

    def __init__(
        self,
        gateway_url: str,
        api_token: str,
        sender_id: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = gateway_url
        self._api_token = api_token
        self._sender_id = sender_id
        self._timeout = timeout
        self._transport = transport

    async def send(self, identifier: str, message: str) -> None:
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        payload = {"to": identifier, "from": self._sender_id, "body": message}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryFailed(f"SMS gateway request failed: {exc}") from exc

        if resp.is_success:
            logger.info("SMS accepted by gateway for %s", identifier)
            return
        raise DeliveryFailed(f"SMS gateway answered {resp.status_code}")


class LogNotifier:
    """Development notifier: logs the message instead of sending it."""

    async def send(self, identifier: str, message: str) -> None:
        logger.warning("SMS_GATEWAY_URL not set, SMS to %s logged only: %s", identifier, message)


def build_notifier(
    gateway_url: str,
    api_token: str,
    sender_id: str,
    timeout: float,
) -> Notifier:
    if not gateway_url:
        return LogNotifier()
    return HttpSmsNotifier(gateway_url, api_token, sender_id, timeout=timeout)
