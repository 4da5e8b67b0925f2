"""Ledger webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any
from placement_lifecycle.config import settings
from placement_lifecycle.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class LedgerClient:
    """Client for sending committed refund adjustments to the accounting ledger"""

    def __init__(self, webhook_url: str | None = None):
        self.webhook_url = webhook_url or settings.ledger_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_adjustment_event(self, payload: Dict[str, Any]) -> None:
        """
        Send a refund/credit adjustment event to the ledger with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            payload: Event data to send to ledger
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
