"""Unit tests for the ledger webhook client"""

import asyncio
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from placement_lifecycle.infrastructure.clients.ledger import LedgerClient

WEBHOOK_URL = "http://ledger.test/webhook"


def response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", WEBHOOK_URL))


def fast_client() -> LedgerClient:
    client = LedgerClient(webhook_url=WEBHOOK_URL)
    client.backoff_base = 0
    client.max_retries = 3
    return client


def test_disabled_without_url():
    assert LedgerClient().enabled is False
    assert LedgerClient(webhook_url=WEBHOOK_URL).enabled is True


def test_send_adjustment_event_success():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = response(200)
        asyncio.run(fast_client().send_adjustment_event({"event": "PLACEMENT_REFUND"}))

    assert mock_post.await_count == 1
    assert mock_post.await_args.kwargs["json"] == {"event": "PLACEMENT_REFUND"}


def test_send_adjustment_event_retries_server_errors():
    """Test 5xx responses are retried until one succeeds"""
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [response(503), response(502), response(200)]
        asyncio.run(fast_client().send_adjustment_event({"event": "PLACEMENT_REFUND"}))

    assert mock_post.await_count == 3


def test_send_adjustment_event_gives_up():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(httpx.ConnectError):
            asyncio.run(fast_client().send_adjustment_event({"event": "PLACEMENT_REFUND"}))

    assert mock_post.await_count == 3
