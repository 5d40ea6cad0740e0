"""Notifier webhook client with exponential backoff retry logic"""

import asyncio
import logging
import httpx
from typing import Any, Dict, List
from lending_engine.config import settings
from lending_engine.domain.exceptions import NotifierError
from lending_engine.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter

logger = logging.getLogger(__name__)


class NotifierClient:
    """Client for publishing domain events to the external notification service"""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url or settings.notifier_webhook_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.transport = transport

    async def publish(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one domain event with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^attempt)
        - Retries on 5xx errors and network failures
        - 4xx responses fail without retry
        - Tracks latency histogram and failure counter

        Raises:
            NotifierError: On a 4xx response or after the final attempt fails
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        raise NotifierError(
                            f"Notifier refused {payload.get('event')} with {e.response.status_code}"
                        ) from e
                    if attempt >= self.max_retries:
                        raise NotifierError(
                            f"Giving up on {payload.get('event')} after {attempt} attempts"
                        ) from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

    async def publish_all(self, payloads: List[Dict[str, Any]]) -> None:
        """
        Publish events in order after the originating transaction committed.

        Delivery failures are logged, never raised: the state change is already
        durable.
        """
        for payload in payloads:
            try:
                await self.publish(payload)
            except NotifierError as e:
                logger.error(str(e), extra={"event": payload.get("event"), "aggregate_id": payload.get("aggregate_id")})
