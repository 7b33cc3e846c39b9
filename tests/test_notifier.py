"""Tests for the SMS notifiers."""

import json
import logging

import httpx
import pytest

from otp_auth.services.notifier import (
    DeliveryFailed,
    HttpSmsNotifier,
    LogNotifier,
    build_notifier,
)


def _notifier(handler) -> HttpSmsNotifier:
    return HttpSmsNotifier(
        "https://sms.example.com/send",
        "api-token",
        "OTPAuth",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_http_notifier_posts_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(202, json={"id": "msg-1"})

    await _notifier(handler).send("+201234567890", "hello")

    assert seen["auth"] == "Bearer api-token"
    assert seen["body"] == {"to": "+201234567890", "from": "OTPAuth", "body": "hello"}


@pytest.mark.asyncio
async def test_http_notifier_raises_on_error_status():
    notifier = _notifier(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(DeliveryFailed):
        await notifier.send("+201234567890", "hello")


@pytest.mark.asyncio
async def test_http_notifier_raises_on_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(DeliveryFailed):
        await _notifier(handler).send("+201234567890", "hello")


@pytest.mark.asyncio
async def test_log_notifier_only_logs(caplog):
    with caplog.at_level(logging.WARNING, logger="otp_auth.services.notifier"):
        await LogNotifier().send("+201234567890", "hello")
    assert "+201234567890" in caplog.text


def test_build_notifier_picks_log_notifier_without_gateway():
    assert isinstance(build_notifier("", "", "OTPAuth", 5.0), LogNotifier)
    assert isinstance(build_notifier("https://sms.example.com", "t", "OTPAuth", 5.0), HttpSmsNotifier)
