"""
Tests for Email Service and post-commit delivery.

Tests MockEmailService, the Brevo client with httpx mocked out, and
deliver_emails() failure isolation.
"""

import asyncio

import pytest
from unittest.mock import patch, MagicMock, AsyncMock

import httpx

from app.services.email_service import EmailService, MockEmailService, html_to_text, get_email_service
from app.services.notification_service import OutgoingEmail, deliver_emails, unique_emails


class TestMockEmailService:
    """Tests for MockEmailService."""

    @pytest.mark.asyncio
    async def test_mock_service_is_configured(self):
        """Test mock service reports as configured."""
        service = MockEmailService()
        assert service.is_configured is True

    @pytest.mark.asyncio
    async def test_mock_service_status(self):
        service = MockEmailService()
        status = service.get_status()

        assert status["connected"] is True
        assert status["provider"] == "mock"
        assert "Mock" in status["message"]

    @pytest.mark.asyncio
    async def test_send_email_to_many_recipients(self):
        """One message carries every recipient."""
        service = MockEmailService()

        result = await service.send_email(
            to=["agent@example.com", "admin@example.com"],
            subject="SLA Reminder",
            html_body="<h1>Reminder</h1>\n<p>Still open</p>",
        )

        assert result["success"] is True
        assert result["message_id"].startswith("mock-")
        assert len(service._sent_emails) == 1
        sent = service._sent_emails[0]
        assert sent["to"] == ["agent@example.com", "admin@example.com"]
        assert sent["body"] == "Reminder\nStill open"

    @pytest.mark.asyncio
    async def test_single_address_is_wrapped(self):
        service = MockEmailService()
        await service.send_email(to="user1@example.com", subject="Email 1", html_body="<p>1</p>")
        assert service._sent_emails[0]["to"] == ["user1@example.com"]


def test_html_to_text_strips_tags():
    assert html_to_text("<div>\n  <b>Complaint</b> COMP202600001\n\n</div>") == "Complaint COMP202600001"


class TestEmailServiceNotConfigured:
    """Tests for EmailService when Brevo is not configured."""

    def test_not_configured_status(self):
        with patch("app.services.email_service.settings") as mock_settings:
            mock_settings.BREVO_API_KEY = None
            mock_settings.EMAIL_FROM_ADDRESS = "test@example.com"
            mock_settings.EMAIL_FROM_NAME = "Test"

            service = EmailService()
            assert service.is_configured is False
            assert service.get_status()["configured"] is False

    @pytest.mark.asyncio
    async def test_send_email_not_configured(self):
        """Test sending email when not configured returns error."""
        with patch("app.services.email_service.settings") as mock_settings:
            mock_settings.BREVO_API_KEY = None
            mock_settings.EMAIL_FROM_ADDRESS = "test@example.com"
            mock_settings.EMAIL_FROM_NAME = "Test"
            mock_settings.EMAIL_SEND_TIMEOUT_SECONDS = 5

            service = EmailService()
            result = await service.send_email(to="test@example.com", subject="Test", html_body="<p>x</p>")

            assert result["success"] is False
            assert "not configured" in result["error"].lower()

    @pytest.mark.asyncio
    async def test_no_recipients(self):
        service = EmailService()
        result = await service.send_email(to=[], subject="Test", html_body="<p>x</p>")
        assert result["success"] is False
        assert result["error"] == "No recipients"

    def test_dependency_falls_back_to_mock_outside_production(self):
        with patch("app.services.email_service.settings") as mock_settings:
            mock_settings.BREVO_API_KEY = None
            mock_settings.EMAIL_FROM_ADDRESS = "test@example.com"
            mock_settings.is_production = False
            assert isinstance(get_email_service(), MockEmailService)


def _configured_service() -> EmailService:
    service = EmailService()
    service.api_key = "test-api-key"
    service.from_address = "sender@example.com"
    service.from_name = "Complaints"
    service.timeout = 5
    return service


class TestEmailServiceIntegration:
    """EmailService against a mocked Brevo endpoint."""

    @pytest.mark.asyncio
    async def test_send_email_with_mocked_brevo(self):
        mock_response = MagicMock()
        mock_response.status_code = 201
        mock_response.json.return_value = {"messageId": "<brevo-123@smtp>"}

        mock_client = MagicMock()
        mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        with patch("app.services.email_service.httpx.AsyncClient", return_value=mock_client):
            result = await _configured_service().send_email(
                to=["a@example.com", "b@example.com"],
                subject="Test Subject",
                html_body="<p>Test body</p>",
            )

        assert result["success"] is True
        assert result["message_id"] == "<brevo-123@smtp>"
        payload = mock_client.post.call_args.kwargs["json"]
        assert payload["to"] == [{"email": "a@example.com"}, {"email": "b@example.com"}]
        assert payload["textContent"] == "Test body"
        assert mock_client.post.call_args.kwargs["headers"]["api-key"] == "test-api-key"

    @pytest.mark.asyncio
    async def test_send_email_api_error(self):
        mock_response = MagicMock()
        mock_response.status_code = 400
        mock_response.text = "invalid sender"

        mock_client = MagicMock()
        mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        with patch("app.services.email_service.httpx.AsyncClient", return_value=mock_client):
            result = await _configured_service().send_email(to="a@example.com", subject="T", html_body="<p>x</p>")

        assert result["success"] is False
        assert result["status_code"] == 400
        assert "invalid sender" in result["error"]

    @pytest.mark.asyncio
    async def test_send_email_timeout(self):
        mock_client = MagicMock()
        mock_client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)

        with patch("app.services.email_service.httpx.AsyncClient", return_value=mock_client):
            result = await _configured_service().send_email(to="a@example.com", subject="T", html_body="<p>x</p>")

        assert result["success"] is False
        assert "timed out" in result["error"]


def test_unique_emails_dedupes_case_insensitively():
    assert unique_emails(["A@example.com", None, "a@example.com ", "", "b@example.com"]) == [
        "A@example.com",
        "b@example.com",
    ]


class TestDeliverEmails:
    """Bounded, failure-isolated delivery after commit."""

    @pytest.mark.asyncio
    async def test_counts_sent_and_failed(self):
        service = MockEmailService()
        original = service.send_email

        async def flaky(to, subject, html_body, **kwargs):
            if subject == "bad":
                raise RuntimeError("smtp down")
            return await original(to=to, subject=subject, html_body=html_body)

        service.send_email = flaky
        emails = [
            OutgoingEmail(to=["a@example.com"], subject="good", html="<p>1</p>", reference="COMP202600001"),
            OutgoingEmail(to=["b@example.com"], subject="bad", html="<p>2</p>", reference="COMP202600002"),
            OutgoingEmail(to=["c@example.com"], subject="good", html="<p>3</p>", reference="COMP202600003"),
        ]

        report = await deliver_emails(service, emails, concurrency=2, timeout=1)

        assert report.sent == 2
        assert report.failed == 1
        assert report.failed_references == ["COMP202600002"]
        assert len(service._sent_emails) == 2

    @pytest.mark.asyncio
    async def test_unsuccessful_result_counts_as_failure(self):
        service = MockEmailService()
        service.send_email = AsyncMock(return_value={"success": False, "error": "quota"})

        report = await deliver_emails(
            service, [OutgoingEmail(to=["a@example.com"], subject="s", html="<p/>", reference="X")], timeout=1
        )

        assert report.sent == 0
        assert report.failed == 1

    @pytest.mark.asyncio
    async def test_slow_send_times_out(self):
        service = MockEmailService()

        async def hang(**kwargs):
            await asyncio.sleep(5)

        service.send_email = hang
        report = await deliver_emails(
            service, [OutgoingEmail(to=["a@example.com"], subject="s", html="<p/>")], timeout=0.05
        )

        assert report.failed == 1

    @pytest.mark.asyncio
    async def test_nothing_to_send(self):
        report = await deliver_emails(MockEmailService(), [])
        assert (report.sent, report.failed) == (0, 0)
