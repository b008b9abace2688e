"""Unit tests for the mail webhook client"""

import asyncio
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from tenancy_ledger.infrastructure.clients.notifier import EmailMessage, NotificationClient

WEBHOOK = "http://mailer.test/send"


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", WEBHOOK))


def _client() -> NotificationClient:
    client = NotificationClient(webhook_url=WEBHOOK)
    client.max_retries = 3
    client.backoff_base = 0.0
    return client


TENANT_EMAIL = EmailMessage(to="jane@example.com", subject="Exit notice", body="Refund: 7950.00")
OWNER_EMAIL = EmailMessage(to="owner@example.com", subject="Tenant exit", body="House A1 released")


def test_client_error_is_not_retried():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_response(400)) as mock_post:
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(_client().send(TENANT_EMAIL))

    assert mock_post.await_count == 1


def test_server_error_is_retried_until_delivered():
    responses = [_response(503), _response(502), _response(200)]
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, side_effect=responses) as mock_post:
        asyncio.run(_client().send(TENANT_EMAIL))

    assert mock_post.await_count == 3
    assert mock_post.await_args.kwargs["json"] == {
        "to": "jane@example.com",
        "subject": "Exit notice",
        "body": "Refund: 7950.00",
    }


def test_server_error_raised_after_last_retry():
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_response(500)) as mock_post:
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(_client().send(TENANT_EMAIL))

    assert mock_post.await_count == 3


def test_exit_notice_continues_after_failed_email():
    failure = httpx.ConnectError("mailer unreachable", request=httpx.Request("POST", WEBHOOK))
    with patch.object(NotificationClient, "send", new_callable=AsyncMock, side_effect=[failure, None]) as mock_send:
        asyncio.run(_client().send_exit_notice([TENANT_EMAIL, OWNER_EMAIL]))

    assert [call.args[0].to for call in mock_send.await_args_list] == ["jane@example.com", "owner@example.com"]
