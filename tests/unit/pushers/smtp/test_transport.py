import smtplib
from unittest import mock

import pytest

from pushers.smtp.config import SmtpConfig
from pushers.smtp.transport import ComposedMessage, DeliveryFailure, MailTransport


@pytest.fixture
def message():
    return ComposedMessage(
        sender="a@example.com",
        recipients=("b@example.com", "c@example.com"),
        subject="Alert",
        body='{"msg":"intrusion"}',
    )


def test_composed_message_headers(message):
    """Composed message carries To/From/Subject headers and the body."""
    email = message.to_email()

    assert email["To"] == "b@example.com, c@example.com"
    assert email["From"] == "a@example.com"
    assert email["Subject"] == "Alert"
    assert email.get_content_type() == "text/plain"
    assert email.get_content().strip() == '{"msg":"intrusion"}'


def test_long_ascii_body_sent_unencoded():
    body = '{"detail":"' + "a=b;" * 60 + '","msg":"intrusion"}'
    email = ComposedMessage("a@example.com", ("b@example.com",), "Alert", body).to_email()

    assert email["Content-Transfer-Encoding"] == "7bit"
    assert body in email.as_string()


def test_non_ascii_body_uses_8bit():
    body = '{"msg":"connexion refusée"}'
    email = ComposedMessage("a@example.com", ("b@example.com",), "Alert", body).to_email()

    assert email["Content-Transfer-Encoding"] == "8bit"
    assert email.get_content().strip() == body


def test_overlong_line_falls_back_to_encoding():
    body = "x" * 1200
    email = ComposedMessage("a@example.com", ("b@example.com",), "Alert", body).to_email()

    assert email["Content-Transfer-Encoding"] not in ("7bit", "8bit")
    assert email.get_content().strip() == body


def test_transport_connects_to_submission_port(smtp_settings, message):
    """Transport logs in and sends to every recipient in one call."""
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        transport.send(message)

        smtp_mock.assert_called_once_with("mail.example.com", 587)
        instance = smtp_mock.return_value.__enter__.return_value
        instance.login.assert_called_once_with("u", "p")
        assert instance.send_message.call_count == 1
        args, kwargs = instance.send_message.call_args
        assert args[0]["Subject"] == "Alert"
        assert kwargs["from_addr"] == "a@example.com"
        assert kwargs["to_addrs"] == ["b@example.com", "c@example.com"]


def test_transport_uses_starttls_when_offered(smtp_settings, message):
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        instance = smtp_mock.return_value.__enter__.return_value
        instance.has_extn.return_value = True
        transport.send(message)

        instance.has_extn.assert_called_with("starttls")
        assert instance.starttls.called


def test_transport_skips_starttls_when_not_offered(smtp_settings, message):
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        instance = smtp_mock.return_value.__enter__.return_value
        instance.has_extn.return_value = False
        transport.send(message)

        assert not instance.starttls.called
        assert instance.send_message.called


def test_transport_without_tls(smtp_settings, message):
    smtp_settings["use_tls"] = False
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        transport.send(message)

        instance = smtp_mock.return_value.__enter__.return_value
        assert not instance.has_extn.called
        assert not instance.starttls.called
        assert instance.login.called


def test_transport_passes_timeout(smtp_settings, message):
    smtp_settings.update({"port": 2525, "timeout": 5})
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        transport.send(message)

        smtp_mock.assert_called_once_with("mail.example.com", 2525, timeout=5.0)


def test_authentication_error_is_delivery_failure(smtp_settings, message):
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        instance = smtp_mock.return_value.__enter__.return_value
        instance.login.side_effect = smtplib.SMTPAuthenticationError(535, b"5.7.8 bad credentials")

        with pytest.raises(DeliveryFailure, match="mail.example.com:587") as exc_info:
            transport.send(message)

        assert isinstance(exc_info.value.__cause__, smtplib.SMTPAuthenticationError)
        assert not instance.send_message.called


def test_connection_error_is_delivery_failure(smtp_settings, message):
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP", side_effect=ConnectionRefusedError(111, "Connection refused")):
        with pytest.raises(DeliveryFailure):
            transport.send(message)


def test_relay_rejection_is_delivery_failure(smtp_settings, message):
    transport = MailTransport(SmtpConfig.from_dict(smtp_settings))

    with mock.patch("smtplib.SMTP") as smtp_mock:
        instance = smtp_mock.return_value.__enter__.return_value
        instance.send_message.side_effect = smtplib.SMTPRecipientsRefused(
            {"b@example.com": (550, b"no such user")}
        )

        with pytest.raises(DeliveryFailure):
            transport.send(message)
