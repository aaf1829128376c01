"""Tests for the Web Push delivery primitive (pywebpush mocked out)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests
from pywebpush import WebPushException

from conftest import make_destination
from modules.push.sender import WebPushSender
from shared.schemas.push import FILLER_OPTIONS, FIXED_OPTIONS


@pytest.fixture
def web_sender():
    return WebPushSender(
        "private-key",
        "mailto:ops@example.com",
        timeout=5.0,
        vapid_public_key="public-key",
    )


def _http_error(status_code: int) -> WebPushException:
    response = MagicMock(status_code=status_code, text="push service says no")
    return WebPushException(f"Push failed: {status_code}", response=response)


async def test_success_passes_options_through(web_sender):
    destination = make_destination()
    with patch("modules.push.sender.webpush") as mock_webpush:
        result = await web_sender.send(destination, '{"title": "t"}', FIXED_OPTIONS)

    assert result.ok is True
    kwargs = mock_webpush.call_args.kwargs
    assert kwargs["subscription_info"] == destination.subscription_info()
    assert kwargs["data"] == '{"title": "t"}'
    assert kwargs["vapid_private_key"] == "private-key"
    assert kwargs["vapid_claims"] == {"sub": "mailto:ops@example.com"}
    assert kwargs["ttl"] == 3600
    assert kwargs["headers"] == {"Urgency": "high"}
    assert kwargs["timeout"] == 5.0


async def test_filler_options(web_sender):
    with patch("modules.push.sender.webpush") as mock_webpush:
        await web_sender.send(make_destination(), "{}", FILLER_OPTIONS)
    kwargs = mock_webpush.call_args.kwargs
    assert kwargs["ttl"] == 30
    assert kwargs["headers"] == {"Urgency": "normal"}


async def test_claims_are_fresh_per_call(web_sender):
    seen = []

    def _capture(**kwargs):
        seen.append(kwargs["vapid_claims"])
        kwargs["vapid_claims"]["aud"] = "https://fcm.googleapis.com"

    with patch("modules.push.sender.webpush", side_effect=_capture):
        await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
        await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
    assert seen[1] == {"sub": "mailto:ops@example.com"}


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 410, 429, 500])
async def test_http_error_carries_status(web_sender, status_code):
    with patch("modules.push.sender.webpush", side_effect=_http_error(status_code)):
        result = await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
    assert result.ok is False
    assert result.status_code == status_code


async def test_timeout_is_transient(web_sender):
    with patch("modules.push.sender.webpush", side_effect=requests.Timeout("read timed out")):
        result = await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
    assert result.ok is False
    assert result.status_code is None
    assert "Timeout" in result.error


async def test_connection_error_is_transient(web_sender):
    with patch("modules.push.sender.webpush", side_effect=requests.ConnectionError("refused")):
        result = await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
    assert result.status_code is None


async def test_local_rejection_is_malformed(web_sender):
    with patch("modules.push.sender.webpush", side_effect=WebPushException("bad keys")):
        result = await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
    assert result.status_code == 400


async def test_unencryptable_keys_are_malformed(web_sender):
    with patch("modules.push.sender.webpush", side_effect=ValueError("Could not decode")):
        result = await web_sender.send(make_destination(), "{}", FIXED_OPTIONS)
    assert result.status_code == 400


def test_configured_requires_both_keys():
    assert WebPushSender("priv", "mailto:x", vapid_public_key="pub").configured is True
    assert WebPushSender("", "mailto:x", vapid_public_key="pub").configured is False
    assert WebPushSender("priv", "mailto:x").configured is False
