"""Unit tests for webhook delivery retries"""

import asyncio
import httpx
import pytest
from lending_engine.domain.exceptions import NotifierError
from lending_engine.infrastructure.clients.notifier import NotifierClient

EVENT = {"event": "payment.applied", "aggregate_id": "loan-1"}


def make_client(statuses):
    """Client whose webhook answers with each status in turn"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(statuses[min(len(calls), len(statuses)) - 1])

    client = NotifierClient(webhook_url="http://notifier.test/hook", transport=httpx.MockTransport(handler))
    client.backoff_base = 0
    client.max_retries = 3
    return client, calls


def test_delivered_first_time():
    client, calls = make_client([200])
    asyncio.run(client.publish(EVENT))
    assert len(calls) == 1


def test_server_error_is_retried():
    client, calls = make_client([503, 200])
    asyncio.run(client.publish(EVENT))
    assert len(calls) == 2


def test_client_error_fails_without_retry():
    client, calls = make_client([400])
    with pytest.raises(NotifierError):
        asyncio.run(client.publish(EVENT))
    assert len(calls) == 1


def test_gives_up_after_max_retries():
    client, calls = make_client([500])
    with pytest.raises(NotifierError):
        asyncio.run(client.publish(EVENT))
    assert len(calls) == 3


def test_publish_all_logs_failures_and_continues(caplog):
    client, calls = make_client([404])
    asyncio.run(client.publish_all([EVENT, {"event": "loan.completed", "aggregate_id": "loan-1"}]))

    assert len(calls) == 2
    assert len([r for r in caplog.records if r.levelname == "ERROR"]) == 2
