"""Configuration and Email Tests"""

from unittest.mock import MagicMock, patch

from teamtodo.config import Settings, validate_settings
from teamtodo.services import email


class TestSettings:
    """Tests for settings defaults and validation"""

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.invitation_ttl_days == 7
        assert settings.avatar_max_bytes == 5 * 1024 * 1024
        assert settings.password_min_length == 6
        assert settings.week_start == 6

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("API_URL", "https://project.backend.test")
        monkeypatch.setenv("READ_TIMEOUT", "12.5")

        settings = Settings(_env_file=None)

        assert settings.api_url == "https://project.backend.test"
        assert settings.read_timeout == 12.5

    def test_validate_settings(self):
        errors = validate_settings(Settings(_env_file=None, api_url="", api_key="", week_start=9))

        assert len(errors) == 3

    def test_valid_settings(self, settings):
        assert validate_settings(settings) == []


class TestInvitationEmail:
    """Tests for invitation email delivery"""

    def test_not_configured_without_sender(self, settings):
        assert email.is_configured(settings) is False

    def test_content_mentions_link_and_team(self):
        subject, plain, html = email.build_invite_content(
            "https://todo.example.com/invite/abc", "Platform", "admin", "2024-05-22T00:00:00+00:00", "ana@example.com"
        )

        assert "Platform" in subject
        assert "https://todo.example.com/invite/abc" in plain
        assert "ana@example.com" in html

    def test_sendgrid_delivery(self, settings):
        settings.email_from_email = "noreply@example.com"
        settings.sendgrid_api_key = "SG.test"
        client = MagicMock()
        client.send.return_value = MagicMock(status_code=202)

        with patch("teamtodo.services.email.SendGridAPIClient", return_value=client):
            result = email.send_invitation_email(
                settings, "new@example.com", "https://x/invite/t", "Platform", "member", "soon"
            )

        assert result == {"sent": True, "status_code": 202}
        client.send.assert_called_once()

    def test_smtp_not_configured(self, settings):
        settings.email_provider = "smtp"
        settings.email_from_email = "noreply@example.com"

        result = email.send_invitation_email(
            settings, "new@example.com", "https://x/invite/t", "Platform", "member", "soon"
        )

        assert result["sent"] is False
        assert "SMTP" in result["error"]
