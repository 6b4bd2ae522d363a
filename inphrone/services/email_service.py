"""Transactional email dispatch through the Resend HTTP API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import aiohttp
from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from inphrone.core.constants import EmailType
from inphrone.core.exceptions import ConfigurationError, NotificationError, ValidationError
from inphrone.core.logger import get_logger
from inphrone.services.metrics import EMAILS_SENT

logger = get_logger(__name__)

_LAYOUT = """<!DOCTYPE html>
<html>
<body style="margin:0;padding:0;background:#f4f4f7;font-family:Helvetica,Arial,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0"><tr><td align="center" style="padding:24px;">
    <table width="600" cellpadding="0" cellspacing="0" style="background:#ffffff;border-radius:12px;overflow:hidden;">
      <tr><td style="background:linear-gradient(135deg,#1F0021 0%,#751006 100%);padding:32px;text-align:center;">
        <h1 style="color:#ffffff;font-size:28px;margin:0;">{% block heading %}{% endblock %}</h1>
      </td></tr>
      <tr><td style="padding:32px;color:#374151;font-size:16px;line-height:1.6;">
        <p>Hi {{ name }},</p>
        {% block body %}{% endblock %}
        {% if cta_url %}
        <p style="text-align:center;margin:32px 0;">
          <a href="{{ cta_url }}" style="display:inline-block;padding:14px 32px;border-radius:8px;background:#1F0021;color:#ffffff;text-decoration:none;font-weight:600;">{{ cta_label }}</a>
        </p>
        {% endif %}
      </td></tr>
      <tr><td style="padding:24px;text-align:center;color:#9ca3af;font-size:12px;">
        You are receiving this because you have an Inphrone account.
        <a href="{{ site_url }}/profile" style="color:#9ca3af;">Manage email preferences</a>
      </td></tr>
    </table>
  </td></tr></table>
</body>
</html>
"""

# (subject template, body template, default call-to-action path and label)
_TEMPLATES: Dict[EmailType, Tuple[str, str, str, str]] = {
    EmailType.WELCOME: (
        "Welcome to Inphrone - Your Voice Shapes Entertainment!",
        "<p>Your account is ready. Share opinions, answer the daily InphroSync "
        "and compete for Your Turn slots.</p>",
        "/dashboard",
        "Start exploring",
    ),
    EmailType.PASSWORD_RESET: (
        "Reset Your Inphrone Password",
        "<p>We received a request to reset your password. The link expires in one hour.</p>",
        "{{ data.resetLink or site_url ~ '/auth' }}",
        "Reset password",
    ),
    EmailType.VERIFICATION: (
        "Verify Your Inphrone Email",
        "<p>Confirm your email address to unlock every Inphrone feature.</p>",
        "{{ data.verifyLink or site_url ~ '/auth' }}",
        "Verify email",
    ),
    EmailType.OPINION_LIKED: (
        "Your Opinion is Resonating!",
        "<p><strong>{{ data.likerName or 'Someone' }}</strong>"
        "{% if data.likerType and data.likerType != 'audience' %} ({{ data.likerType }}){% endif %} "
        "liked your opinion <em>\"{{ data.opinionTitle or 'Your opinion' }}\"</em>.</p>",
        "/my-opinions",
        "View your opinions",
    ),
    EmailType.INDUSTRY_RECOGNITION: (
        "Industry Professional Noticed Your Opinion!",
        "<p><strong>{{ data.likerName or 'An industry professional' }}</strong> from the "
        "<strong>{{ data.likerType or 'entertainment industry' }}</strong> liked "
        "<em>\"{{ data.opinionTitle or 'Your opinion' }}\"</em>.</p>",
        "/my-opinions",
        "See who noticed",
    ),
    EmailType.STREAK_ACHIEVEMENT: (
        "{{ data.streakCount or '' }} Week Streak! You're On Fire!",
        "<p>You've kept a <strong>{{ data.streakCount or '' }}-week streak</strong> on Inphrone.</p>"
        "<p>You're in the top <strong>{{ [5, 100 - (data.streakCount or 1) * 5] | max }}%</strong> "
        "of consistent voices!</p>",
        "/dashboard",
        "Keep the streak going",
    ),
    EmailType.BADGE_EARNED: (
        "New Badge: {{ data.badgeName or 'Achievement Unlocked' }}!",
        "<h3>{{ data.badgeName or 'Wisdom Badge' }}</h3>"
        "<p>{{ data.badgeDescription or 'Your entertainment wisdom is recognized!' }}</p>",
        "/profile",
        "View your badges",
    ),
    EmailType.INPHROSYNC_REMINDER: (
        "Your Daily Voice Awaits - InphroSync",
        "<p>{% if data.currentStreak %}You have a <strong>{{ data.currentStreak }}-day streak</strong>! "
        "Don't let it end.{% else %}New daily questions are waiting for your voice!{% endif %}</p>",
        "/inphrosync",
        "Answer today's questions",
    ),
    EmailType.WEEKLY_DIGEST: (
        "Your Weekly Entertainment Impact Report",
        "<ul><li>Opinions shared: {{ data.opinionsCount or 0 }}</li>"
        "<li>Likes received: {{ data.likesReceived or 0 }}</li>"
        "<li>InphroSync answers: {{ data.inphrosyncCount or 0 }}</li></ul>",
        "/dashboard",
        "See your dashboard",
    ),
    EmailType.MILESTONE: (
        "Milestone Reached: {{ data.milestone or 'Achievement' }}!",
        "<p>{{ data.message or \"You've reached an amazing milestone on Inphrone!\" }}</p>"
        "<h3>{{ data.emoji or '' }} {{ data.milestone or 'Milestone Achieved' }}</h3>",
        "/profile",
        "Celebrate",
    ),
    EmailType.BROADCAST: (
        "{{ data.title or 'Message from Inphrone' }}",
        "<p>{{ data.message or '' }}</p>",
        "{{ data.actionUrl or '' }}",
        "Open Inphrone",
    ),
}


def _build_environment() -> Environment:
    sources: Dict[str, str] = {"layout.html": _LAYOUT}
    for email_type, (subject, body, cta, _label) in _TEMPLATES.items():
        sources[f"{email_type.value}.subject"] = subject
        sources[f"{email_type.value}.cta"] = cta
        sources[f"{email_type.value}.html"] = (
            '{% extends "layout.html" %}'
            "{% block heading %}" + subject + "{% endblock %}"
            "{% block body %}" + body + "{% endblock %}"
        )
    return Environment(
        loader=DictLoader(sources),
        autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
        undefined=StrictUndefined,
    )


class _Data(dict):
    """Template data where missing keys read as ``None``."""

    def __getattr__(self, key: str) -> Any:
        return self.get(key)


class EmailService:
    """Renders and sends the eleven transactional email types."""

    def __init__(
        self,
        api_key: Optional[str],
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        site_url: str = "https://inphrone.com",
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._api_url = api_url
        self._site_url = site_url.rstrip("/")
        self._session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._env = _build_environment()

    @staticmethod
    def parse_type(email_type: Any) -> EmailType:
        if not email_type:
            raise ValidationError("Missing required field: type")
        try:
            return EmailType(email_type)
        except ValueError:
            raise ValidationError(f"Unknown email type: {email_type}") from None

    def render(
        self,
        email_type: EmailType,
        name: Optional[str],
        data: Optional[Mapping[str, Any]] = None,
    ) -> Tuple[str, str]:
        """Return ``(subject, html)`` for an email type."""
        key = email_type.value
        context = {
            "name": name or "there",
            "data": _Data(data or {}),
            "site_url": self._site_url,
        }
        subject = self._env.get_template(f"{key}.subject").render(context).strip()
        cta = self._env.get_template(f"{key}.cta").render(context).strip()
        if cta.startswith("/"):
            cta = f"{self._site_url}{cta}"
        html = self._env.get_template(f"{key}.html").render(
            cta_url=cta or None,
            cta_label=_TEMPLATES[email_type][3],
            **context,
        )
        return subject, html

    def build_payload(
        self,
        email_type: EmailType,
        to: str,
        name: Optional[str],
        data: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        subject, html = self.render(email_type, name, data)
        millis = int(self._clock().timestamp() * 1000)
        return {
            "from": self._sender,
            "to": [to],
            "subject": subject,
            "html": html,
            "headers": {
                "List-Unsubscribe": f"<{self._site_url}/profile>",
                "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
                "X-Entity-Ref-ID": f"inphrone-{email_type.value}-{millis}",
            },
            "tags": [
                {"name": "email_type", "value": email_type.value},
                {"name": "source", "value": "inphrone"},
            ],
        }

    async def send(
        self,
        email_type: Any,
        to: Optional[str],
        name: Optional[str] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Send one email and return the provider's message id.

        Raises:
            ValidationError: missing recipient or type, or an unknown type.
            ConfigurationError: no API key configured.
            NotificationError: the provider rejected the request.
        """
        if not to:
            raise ValidationError("Missing required field: to")
        parsed_type = self.parse_type(email_type)
        if not self._api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")

        payload = self.build_payload(parsed_type, to, name, data)
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._session is not None:
                message_id = await self._post(self._session, payload, headers)
            else:
                async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15)) as session:
                    message_id = await self._post(session, payload, headers)
        except aiohttp.ClientError as exc:
            EMAILS_SENT.labels(type=parsed_type.value, status="failed").inc()
            raise NotificationError(f"Email provider unreachable: {exc}") from exc
        except NotificationError:
            EMAILS_SENT.labels(type=parsed_type.value, status="failed").inc()
            raise

        EMAILS_SENT.labels(type=parsed_type.value, status="sent").inc()
        logger.info("Email %s sent to %s (id=%s)", parsed_type.value, to, message_id)
        return message_id

    async def _post(
        self,
        session: aiohttp.ClientSession,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> str:
        async with session.post(self._api_url, json=payload, headers=headers) as response:
            if response.status < 200 or response.status >= 300:
                detail = await response.text()
                raise NotificationError(f"Email provider returned {response.status}: {detail}")
            body = await response.json()
        return str(body.get("id", ""))
