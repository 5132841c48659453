from __future__ import annotations

import html
import logging
from dataclasses import dataclass

import httpx

from taskforce.core.config import Settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailNotConfiguredError(RuntimeError):
    """Raised when outbound email credentials are missing."""


class EmailDeliveryError(RuntimeError):
    """Raised when the email provider rejects a message."""


@dataclass(slots=True)
class RenderedEmail:
    html: str
    text: str
    url: str


def collaboration_email(settings: Settings, *, title: str, body: str, cta_label: str, cta_href: str) -> RenderedEmail:
    site_url = settings.site_url.rstrip("/")
    url = cta_href if cta_href.startswith("http") else f"{site_url}{cta_href}"

    html_body = f"""
  <div style="font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Helvetica, Arial; line-height: 1.5; color:#0f172a;">
    <h2 style="margin:0 0 12px 0;">{html.escape(title)}</h2>
    <p style="margin:0 0 16px 0; color:#334155;">{html.escape(body)}</p>
    <p style="margin:0 0 22px 0;">
      <a href="{html.escape(url)}" style="display:inline-block; background:#0f172a; color:#ffffff; text-decoration:none; padding:10px 14px; border-radius:10px; font-weight:600;">
        {html.escape(cta_label)}
      </a>
    </p>
    <p style="margin:0; font-size:12px; color:#64748b;">
      Solarpunk Taskforce · You can disable email notifications in Settings.
    </p>
  </div>"""
    text = f"{title}\n\n{body}\n\n{url}\n\nSolarpunk Taskforce"
    return RenderedEmail(html=html_body, text=text, url=url)


async def send_email(settings: Settings, *, to: str, subject: str, html_body: str, text: str | None = None) -> None:
    if not settings.resend_api_key:
        raise EmailNotConfiguredError("Missing SPT_RESEND_API_KEY")
    if not settings.resend_from_email:
        raise EmailNotConfiguredError("Missing SPT_RESEND_FROM_EMAIL")

    payload = {"from": settings.resend_from_email, "to": to, "subject": subject, "html": html_body}
    if text:
        payload["text"] = text

    try:
        async with httpx.AsyncClient(timeout=settings.email_timeout_seconds) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                json=payload,
            )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"Resend request failed: {exc}") from exc

    if response.status_code >= 400:
        raise EmailDeliveryError(f"Resend error {response.status_code}: {response.text}")


async def notify_moderators(settings: Settings, *, kind_label: str, title: str, admin_path: str) -> bool:
    """Tell the moderation inbox about a new submission. Never raises."""
    if not settings.moderation_notify_email or not settings.email_enabled:
        return False

    rendered = collaboration_email(
        settings,
        title=f"New {kind_label.lower()} awaiting review",
        body=f"“{title}” was submitted and is waiting in the moderation queue.",
        cta_label="Open review queue",
        cta_href=admin_path,
    )
    try:
        await send_email(
            settings,
            to=settings.moderation_notify_email,
            subject=f"New {kind_label.lower()} awaiting review",
            html_body=rendered.html,
            text=rendered.text,
        )
    except (EmailNotConfiguredError, EmailDeliveryError) as exc:
        logger.warning("moderation notification failed kind=%s error=%s", kind_label, exc)
        return False
    return True
