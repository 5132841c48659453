from __future__ import annotations

import asyncio
import json
from typing import Callable

import httpx
import pytest

from taskforce.core.config import Settings
from taskforce.services import email


def _settings(**overrides) -> Settings:
    values = {
        "resend_api_key": "re_test",
        "resend_from_email": "Taskforce <noreply@example.org>",
        "moderation_notify_email": "mods@example.org",
        "site_url": "https://taskforce.example/",
    }
    return Settings(**(values | overrides))


def _mock_resend(monkeypatch: pytest.MonkeyPatch, handler: Callable[[httpx.Request], httpx.Response]) -> None:
    real_client = httpx.AsyncClient

    def _client(**kwargs) -> httpx.AsyncClient:
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client)


def test_collaboration_email_escapes_and_absolutises() -> None:
    rendered = email.collaboration_email(
        _settings(),
        title="<b>New</b> request",
        body="Tom & Jerry want to join",
        cta_label="Review",
        cta_href="/organisations/o-1/requests",
    )

    assert rendered.url == "https://taskforce.example/organisations/o-1/requests"
    assert "&lt;b&gt;New&lt;/b&gt; request" in rendered.html
    assert "Tom &amp; Jerry" in rendered.html
    assert rendered.text.startswith("<b>New</b> request\n\nTom & Jerry")


def test_collaboration_email_keeps_absolute_links() -> None:
    rendered = email.collaboration_email(
        _settings(), title="t", body="b", cta_label="Go", cta_href="https://elsewhere.example/x"
    )

    assert rendered.url == "https://elsewhere.example/x"


def test_send_email_requires_credentials() -> None:
    with pytest.raises(email.EmailNotConfiguredError):
        asyncio.run(email.send_email(_settings(resend_api_key=None), to="a@b.org", subject="s", html_body="<p>x</p>"))


def test_send_email_posts_to_resend(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "email-1"})

    _mock_resend(monkeypatch, _handler)

    asyncio.run(email.send_email(_settings(), to="a@b.org", subject="Hello", html_body="<p>x</p>", text="x"))

    [request] = seen
    assert str(request.url) == email.RESEND_API_URL
    assert request.headers["authorization"] == "Bearer re_test"
    assert json.loads(request.content) == {
        "from": "Taskforce <noreply@example.org>",
        "to": "a@b.org",
        "subject": "Hello",
        "html": "<p>x</p>",
        "text": "x",
    }


def test_send_email_raises_on_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_resend(monkeypatch, lambda request: httpx.Response(422, text="invalid from"))

    with pytest.raises(email.EmailDeliveryError, match="422"):
        asyncio.run(email.send_email(_settings(), to="a@b.org", subject="s", html_body="h"))


def test_notify_moderators_skips_without_configuration() -> None:
    sent = asyncio.run(
        email.notify_moderators(
            _settings(moderation_notify_email=None), kind_label="Project", title="x", admin_path="/admin/registrations"
        )
    )

    assert sent is False


def test_notify_moderators_sends_review_link(monkeypatch: pytest.MonkeyPatch) -> None:
    bodies: list[dict] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "email-2"})

    _mock_resend(monkeypatch, _handler)

    sent = asyncio.run(
        email.notify_moderators(_settings(), kind_label="Issue", title="River dumping", admin_path="/admin/issue-registrations")
    )

    assert sent is True
    assert bodies[0]["to"] == "mods@example.org"
    assert bodies[0]["subject"] == "New issue awaiting review"
    assert "https://taskforce.example/admin/issue-registrations" in bodies[0]["text"]


def test_notify_moderators_never_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_resend(monkeypatch, lambda request: httpx.Response(500, text="boom"))

    sent = asyncio.run(
        email.notify_moderators(_settings(), kind_label="Project", title="x", admin_path="/admin/registrations")
    )

    assert sent is False
