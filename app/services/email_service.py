"""Email Service - Brevo (formerly Sendinblue) integration for transactional emails.

Features:
- Send one HTML message to one or many recipients via the Brevo API
- Plain text alternative derived from the HTML body
- Bounded request timeout so a slow mail server cannot stall a caller
- No external SDK required (uses httpx)

Failures are reported in the returned dict, never raised.
"""

from app.config import settings
import logging
import re
import uuid
from typing import Optional, Dict, Any, List, Union
import httpx

logger = logging.getLogger(__name__)

# Brevo API endpoint
BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"

_TAG_RE = re.compile(r"<[^>]*>")


def html_to_text(html: str) -> str:
    """Crude plain-text alternative: strip tags and collapse blank lines."""
    text = _TAG_RE.sub("", html)
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _recipients(to: Union[str, List[str]]) -> List[str]:
    if isinstance(to, str):
        return [to]
    return [addr for addr in to if addr]


class EmailService:
    """Service for sending emails via Brevo API."""

    def __init__(self):
        self.api_key = settings.BREVO_API_KEY
        self.from_address = settings.EMAIL_FROM_ADDRESS
        self.from_name = settings.EMAIL_FROM_NAME
        self.timeout = settings.EMAIL_SEND_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.api_key) and bool(self.from_address)

    def get_status(self) -> Dict[str, Any]:
        """Get email service configuration status."""
        if not self.api_key:
            return {
                "connected": False,
                "configured": False,
                "provider": "brevo",
                "message": "Brevo API key not configured. Set BREVO_API_KEY environment variable.",
            }

        return {
            "connected": True,
            "configured": True,
            "provider": "brevo",
            "from_address": self.from_address,
            "from_name": self.from_name,
            "message": "Brevo email service configured",
        }

    async def send_email(
        self,
        to: Union[str, List[str]],
        subject: str,
        html_body: str,
        body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email via Brevo API.

        Args:
            to: Recipient address or list of addresses (one message, all recipients)
            subject: Email subject line
            html_body: HTML body
            body: Optional plain text body (derived from html_body if omitted)
            reply_to: Optional reply-to address

        Returns:
            Dict with success, status_code, message_id and error
        """
        recipients = _recipients(to)
        if not recipients:
            return {
                "success": False,
                "error": "No recipients",
                "status_code": None,
                "message_id": None,
            }

        if not self.api_key:
            error_msg = "Brevo API key not configured"
            logger.error(error_msg)
            return {
                "success": False,
                "error": error_msg,
                "status_code": None,
                "message_id": None,
            }

        payload = {
            "sender": {
                "name": self.from_name,
                "email": self.from_address,
            },
            "to": [{"email": addr} for addr in recipients],
            "subject": subject,
            "htmlContent": html_body,
            "textContent": body or html_to_text(html_body),
        }

        if reply_to:
            payload["replyTo"] = {"email": reply_to}

        headers = {
            "accept": "application/json",
            "api-key": self.api_key,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    BREVO_API_URL,
                    json=payload,
                    headers=headers,
                    timeout=self.timeout,
                )

            if response.status_code in (200, 201):
                result = response.json()
                message_id = result.get("messageId")

                logger.info(
                    "Email sent successfully via Brevo",
                    extra={
                        "recipient_count": len(recipients),
                        "subject": subject[:50],
                        "status_code": response.status_code,
                        "message_id": message_id,
                    },
                )

                return {
                    "success": True,
                    "status_code": response.status_code,
                    "message_id": message_id,
                }
            else:
                error_detail = response.text
                logger.error(
                    "Brevo API error",
                    extra={
                        "status_code": response.status_code,
                        "error": error_detail,
                    },
                )
                return {
                    "success": False,
                    "error": f"Brevo API error: {error_detail}",
                    "status_code": response.status_code,
                    "message_id": None,
                }

        except httpx.TimeoutException:
            error_msg = "Brevo API request timed out"
            logger.error(error_msg)
            return {
                "success": False,
                "error": error_msg,
                "status_code": None,
                "message_id": None,
            }
        except Exception as e:
            error_msg = str(e)
            logger.error(
                "Failed to send email via Brevo",
                extra={
                    "recipient_count": len(recipients),
                    "error": error_msg,
                },
            )
            return {
                "success": False,
                "error": error_msg,
                "status_code": None,
                "message_id": None,
            }


class MockEmailService(EmailService):
    """Mock email service for testing and development."""

    def __init__(self):
        self.api_key = "mock-key"
        self.from_address = "test@example.com"
        self.from_name = "Test Sender"
        self.timeout = 1.0
        self._sent_emails = []

    @property
    def is_configured(self) -> bool:
        """Mock service is always configured."""
        return True

    def get_status(self) -> Dict[str, Any]:
        """Mock status."""
        return {
            "connected": True,
            "configured": True,
            "provider": "mock",
            "from_address": self.from_address,
            "from_name": self.from_name,
            "message": "Mock email service (emails not actually sent)",
        }

    async def send_email(
        self,
        to: Union[str, List[str]],
        subject: str,
        html_body: str,
        body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Mock sending an email."""
        mock_message_id = f"mock-{uuid.uuid4().hex[:16]}"

        self._sent_emails.append(
            {
                "to": _recipients(to),
                "subject": subject,
                "html_body": html_body,
                "body": body or html_to_text(html_body),
                "reply_to": reply_to,
                "message_id": mock_message_id,
            }
        )

        logger.info(f"Mock email sent to {len(_recipients(to))} recipient(s): {subject}")

        return {
            "success": True,
            "status_code": 201,
            "message_id": mock_message_id,
        }


def get_email_service() -> EmailService:
    """FastAPI dependency: real Brevo sender when configured, mock otherwise."""
    service = EmailService()
    if service.is_configured:
        return service
    if settings.is_production:
        logger.warning("Email service not configured in production; emails will not be delivered")
        return service
    return MockEmailService()
