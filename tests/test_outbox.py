"""Tests for the email outbox and SMTP delivery.

Covers:
- enqueue_email joins list recipients and waits for the caller's commit
- process_outbox marks rows sent / retries failures / gives up after max attempts
- send_email_sync renders the template and talks to SMTP (mocked)
- `flask send-outbox` CLI wiring
"""

from unittest.mock import MagicMock, patch

import pytest

from fireops.extensions import db
from fireops.models.outbox import OutboxEmail
from fireops.services import notification_service
from fireops.services.email_service import EmailNotConfigured, send_email_sync


def _queue(**extra):
    fields = {
        "to": "pat@acme.test",
        "subject": "Hello",
        "template": "emails/customer_confirmation.html",
        "context": {"name": "Pat"},
    }
    fields.update(extra)
    message = notification_service.enqueue_email(**fields)
    db.session.commit()
    return message


class TestEnqueue:

    def test_list_recipients_joined(self, app):
        message = _queue(to=["a@x.test", "b@x.test"])
        assert message.to_address == "a@x.test, b@x.test"
        assert message.status == "pending"
        assert message.attempts == 0

    def test_rolled_back_with_caller(self, app):
        notification_service.enqueue_email(
            to="pat@acme.test", subject="Hi", template="emails/quote.html"
        )
        db.session.rollback()
        assert OutboxEmail.query.count() == 0


class TestProcessOutbox:

    @patch("fireops.services.notification_service.send_email_sync")
    def test_sends_pending(self, mock_send, app):
        message = _queue(reply_to="office@test.local")

        assert notification_service.process_outbox() == (1, 0)
        mock_send.assert_called_once_with(
            to="pat@acme.test",
            subject="Hello",
            template="emails/customer_confirmation.html",
            context={"name": "Pat"},
            reply_to="office@test.local",
        )
        assert message.status == "sent"
        assert message.attempts == 1
        assert message.sent_at is not None

    @patch("fireops.services.notification_service.send_email_sync")
    def test_failure_stays_pending(self, mock_send, app):
        mock_send.side_effect = OSError("connection refused")
        message = _queue()

        assert notification_service.process_outbox() == (0, 1)
        assert message.status == "pending"
        assert message.attempts == 1
        assert message.last_error == "connection refused"

    @patch("fireops.services.notification_service.send_email_sync")
    def test_gives_up_after_max_attempts(self, mock_send, app):
        mock_send.side_effect = OSError("mailbox unavailable")
        message = _queue()
        message.attempts = 4
        db.session.commit()

        notification_service.process_outbox()
        assert message.status == "failed"
        assert message.attempts == 5

        # failed rows are not retried
        mock_send.reset_mock()
        notification_service.process_outbox()
        mock_send.assert_not_called()

    @patch("fireops.services.notification_service.send_email_sync")
    def test_one_bad_row_does_not_block_others(self, mock_send, app):
        def fake_send(to, **kwargs):
            if to == "bad@x.test":
                raise OSError("bad address")

        mock_send.side_effect = fake_send
        bad = _queue(to="bad@x.test")
        good = _queue(to="good@x.test")

        assert notification_service.process_outbox() == (1, 1)
        assert bad.status == "pending"
        assert good.status == "sent"

    @patch("fireops.services.notification_service.send_email_sync")
    def test_limit(self, mock_send, app):
        for i in range(3):
            _queue(to=f"user{i}@x.test")
        notification_service.process_outbox(limit=2)
        assert mock_send.call_count == 2
        assert OutboxEmail.query.filter_by(status="pending").count() == 1


class TestSendEmailSync:

    def test_not_configured(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_USERNAME", None)
        with pytest.raises(EmailNotConfigured):
            send_email_sync("pat@acme.test", "Hi", "emails/customer_confirmation.html",
                            {"name": "Pat"})

    @patch("fireops.services.email_service.smtplib.SMTP")
    def test_renders_and_sends(self, mock_smtp, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAIL_USERNAME", "mailer@test.local")
        monkeypatch.setitem(app.config, "MAIL_PASSWORD", "secret")
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server

        send_email_sync(
            to="pat@acme.test",
            subject="Your quote",
            template="emails/quote.html",
            context={"name": "Pat", "quote_number": "QT-2026-001", "total": 324.75,
                     "link_url": "http://localhost:5000/c/abc"},
            reply_to="office@test.local",
        )

        server.login.assert_called_once_with("mailer@test.local", "secret")
        msg = server.send_message.call_args.args[0]
        assert msg["To"] == "pat@acme.test"
        assert msg["Subject"] == "Your quote"
        assert msg["Reply-To"] == "office@test.local"
        html = msg.get_payload()[0].get_payload(decode=True).decode()
        assert "QT-2026-001" in html


class TestSendOutboxCommand:

    @patch("fireops.services.notification_service.process_outbox")
    def test_cli_passes_limit(self, mock_process, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["send-outbox", "--limit", "10"])
        assert result.exit_code == 0
        mock_process.assert_called_once_with(limit=10)
