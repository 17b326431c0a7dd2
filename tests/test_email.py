import logging

from app.services.email import EmailService


async def test_unsent_email_does_not_log_links(caplog) -> None:
    service = EmailService()
    assert not service.is_configured

    with caplog.at_level(logging.DEBUG, logger="app.services.email"):
        sent = await service.send_verification_email("ana@example.com", "verify-abc123", "Ana")
        assert sent is True
        sent = await service.send_password_reset_email("ana@example.com", "reset-xyz789", "Ana")
        assert sent is True

    assert "ana@example.com" in caplog.text
    assert "verify-abc123" not in caplog.text
    assert "reset-xyz789" not in caplog.text
