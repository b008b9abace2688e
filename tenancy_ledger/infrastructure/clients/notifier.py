"""Mail webhook client with exponential backoff retry logic"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import List

import httpx

from tenancy_ledger.config import settings
from tenancy_ledger.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)


@dataclass
class EmailMessage:
    """Outbound email handed to the mail webhook"""

    to: str
    subject: str
    body: str


class NotificationClient:
    """Client for sending tenant and owner emails through the mail webhook"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    async def send(self, message: EmailMessage) -> None:
        """
        Deliver one email with retry logic.

        Retry strategy:
        - Exponential backoff: base * 2^(attempt - 1)
        - Retries on 5xx errors and network failures
        - 4xx responses fail immediately without a retry
        - Tracks latency histogram and failure counter

        Runs after the ledger transaction has committed, so a failure here
        never affects ledger state.

        Raises:
            httpx.HTTPError: Delivery rejected, or failed after all retries
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=asdict(message),
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.inc()

                    rejected = isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500
                    if rejected or attempt >= self.max_retries:
                        logging.error(
                            f"Notification delivery failed: {e}",
                            extra={"recipient": message.to, "subject": message.subject, "attempts": attempt},
                        )
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

    async def send_exit_notice(self, messages: List[EmailMessage]) -> None:
        """Send tenant and owner exit emails; a failed email does not stop the rest"""
        for message in messages:
            try:
                await self.send(message)
            except httpx.HTTPError as e:
                logging.error(
                    f"Exit notice not delivered: {e}",
                    extra={"recipient": message.to, "subject": message.subject},
                )
