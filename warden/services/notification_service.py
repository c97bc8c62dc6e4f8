"""Notification service for transactional emails via an HTTP email API"""

import html
from typing import Optional, Dict, Any

import httpx
import structlog

from warden.config import settings

logger = structlog.get_logger()

# template name -> (subject, html body); variables are HTML-escaped before substitution
EMAIL_TEMPLATES: Dict[str, tuple[str, str]] = {
    "welcome": (
        "Welcome to {brand_name}",
        "<p>Hi {username},</p><p>Welcome to {brand_name}. Your account is ready.</p>",
    ),
    "verify_email": (
        "Verify your email",
        "<p>Hi {username},</p><p>Confirm your email address by opening "
        "<a href=\"{url}\">this link</a>. It expires in {expires_minutes} minutes.</p>",
    ),
    "reset_password": (
        "Reset your password",
        "<p>Hi {username},</p><p>Reset your password by opening "
        "<a href=\"{url}\">this link</a>. It expires in {expires_minutes} minutes. "
        "If you did not ask for this you can ignore this email.</p>",
    ),
    "password_changed": (
        "Your password was changed",
        "<p>Hi {username},</p><p>The password of your account was just changed and "
        "all of your sessions were signed out.</p>",
    ),
    "two_factor_otp": (
        "Your verification code",
        "<p>Hi {username},</p><p>Your verification code is <strong>{otp}</strong>. "
        "It expires in {expires_minutes} minutes.</p>",
    ),
    "2fa_enabled": (
        "Two-factor authentication enabled",
        "<p>Hi {username},</p><p>Two-factor authentication is now enabled on your account.</p>",
    ),
    "2fa_disabled": (
        "Two-factor authentication disabled",
        "<p>Hi {username},</p><p>Two-factor authentication was disabled on your account.</p>",
    ),
    "invitation": (
        "You have been invited to join {organization_name}",
        "<p>{inviter_email} invited you to join <strong>{organization_name}</strong> "
        "as {role}.</p><p><a href=\"{url}\">Accept the invitation</a></p>",
    ),
}


def render_template(template_name: str, variables: Dict[str, Any]) -> tuple[str, str]:
    """Render a template into (subject, html)"""
    subject, body = EMAIL_TEMPLATES[template_name]
    values = {"brand_name": settings.EMAIL_FROM_NAME, **variables}
    escaped = {key: html.escape(str(value)) for key, value in values.items()}
    return subject.format(**values), body.format(**escaped)


class NotificationService:
    """Sends transactional email; delivery failures are logged, never raised"""

    def __init__(self):
        self.api_url = settings.EMAIL_API_URL
        self.api_key = settings.EMAIL_API_KEY
        self.enabled = bool(self.api_key)

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        email_type: str,
    ) -> Optional[Dict[str, Any]]:
        """
        Deliver one email.

        Args:
            to: Recipient address
            subject: Subject line
            html_body: Rendered HTML body
            email_type: Template name, used for logging only

        Returns:
            Provider response, or None if disabled or delivery failed
        """
        if not self.enabled:
            logger.warning(
                "notification_skipped",
                reason="email_api_not_configured",
                recipient=to,
                email_type=email_type,
            )
            return None

        payload = {
            "from": f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>",
            "to": [to],
            "subject": subject,
            "html": html_body,
        }

        try:
            async with httpx.AsyncClient(timeout=settings.EMAIL_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
                result = response.json() if response.content else {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "notification_failed",
                recipient=to,
                email_type=email_type,
                error=str(e),
            )
            return None

        logger.info(
            "notification_sent",
            recipient=to,
            email_type=email_type,
            delivery_id=result.get("id"),
        )
        return result

    async def _send_template(
        self,
        recipient: str,
        template_name: str,
        variables: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        subject, body = render_template(template_name, variables)
        return await self.send_email(recipient, subject, body, email_type=template_name)

    async def send_welcome_email(self, email: str, username: str) -> Optional[Dict[str, Any]]:
        """Send welcome email to a newly registered user"""
        return await self._send_template(email, "welcome", {"username": username or email})

    async def send_email_verification(
        self,
        email: str,
        url: str,
        expires_minutes: int,
    ) -> Optional[Dict[str, Any]]:
        return await self._send_template(
            email,
            "verify_email",
            {"username": email, "url": url, "expires_minutes": expires_minutes},
        )

    async def send_password_reset_email(
        self,
        email: str,
        url: str,
        expires_minutes: int,
    ) -> Optional[Dict[str, Any]]:
        return await self._send_template(
            email,
            "reset_password",
            {"username": email, "url": url, "expires_minutes": expires_minutes},
        )

    async def send_password_changed_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._send_template(email, "password_changed", {"username": email})

    async def send_two_factor_otp(
        self,
        email: str,
        otp: str,
        expires_minutes: int,
    ) -> Optional[Dict[str, Any]]:
        return await self._send_template(
            email,
            "two_factor_otp",
            {"username": email, "otp": otp, "expires_minutes": expires_minutes},
        )

    async def send_2fa_enabled_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._send_template(email, "2fa_enabled", {"username": email})

    async def send_2fa_disabled_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._send_template(email, "2fa_disabled", {"username": email})

    async def send_invitation_email(
        self,
        email: str,
        organization_name: str,
        inviter_email: str,
        role: str,
        invitation_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Send an organization invitation"""
        url = f"{settings.FRONTEND_URL}/accept-invitation/{invitation_id}"
        return await self._send_template(
            email,
            "invitation",
            {
                "organization_name": organization_name,
                "inviter_email": inviter_email,
                "role": role,
                "url": url,
            },
        )


notification_service = NotificationService()
