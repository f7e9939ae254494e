import smtplib
import socket
from dataclasses import replace

import pytest

import transport
from relay import Outcome
from transport import FailureKind, SMTPTransport, TransportError, TransportMessage, classify


class FakeSMTP:
    """Stands in for smtplib.SMTP / SMTP_SSL. Behaviour is set on the class per test."""

    instances: list["FakeSMTP"] = []
    fail_on: str | None = None
    error: BaseException | None = None
    offers_starttls = True
    rcpt_reply = (250, b"2.1.5 OK")

    def __init__(self, host, port, timeout=None, context=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        self.data_payload = None
        self.closed = False
        FakeSMTP.instances.append(self)
        self._maybe_fail("connect")

    def _maybe_fail(self, step):
        self.calls.append(step)
        if self.fail_on == step:
            raise self.error

    def quit(self):
        self._maybe_fail("quit")
        return 221, b"Bye"

    def close(self):
        self.closed = True

    def ehlo(self):
        self._maybe_fail("ehlo")
        return 250, b"ok"

    def has_extn(self, name):
        return name == "starttls" and self.offers_starttls

    def starttls(self, context=None):
        self._maybe_fail("starttls")

    def login(self, user, password):
        self._maybe_fail("login")

    def mail(self, sender):
        self._maybe_fail("mail")
        return 250, b"2.1.0 OK"

    def rcpt(self, recipient):
        self._maybe_fail("rcpt")
        return self.rcpt_reply

    def data(self, payload):
        self._maybe_fail("data")
        self.data_payload = payload
        return 250, b"2.0.0 OK queued as ABC123"


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_on = None
    FakeSMTP.error = None
    FakeSMTP.offers_starttls = True
    FakeSMTP.rcpt_reply = (250, b"2.1.5 OK")
    monkeypatch.setattr(transport.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(transport.smtplib, "SMTP_SSL", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def message():
    return TransportMessage(
        from_name="Liquidata Contact Form",
        from_email="forms@example.com",
        to_email="inbox@example.com",
        reply_to="a@x.com",
        subject="New Contact Form Submission - Liquidata",
        body_text="plain",
        body_html="<p>html</p>",
    )


@pytest.mark.parametrize("exc,kind", [
    (smtplib.SMTPAuthenticationError(535, b"5.7.8 bad credentials"), FailureKind.AUTH),
    (ConnectionRefusedError(111, "Connection refused"), FailureKind.CONNECTION),
    (socket.gaierror(-2, "Name or service not known"), FailureKind.CONNECTION),
    (smtplib.SMTPConnectError(421, b"busy"), FailureKind.CONNECTION),
    (smtplib.SMTPServerDisconnected("Connection unexpectedly closed"), FailureKind.CONNECTION),
    (socket.timeout("timed out"), FailureKind.TIMEOUT),
    (TimeoutError(), FailureKind.TIMEOUT),
    (smtplib.SMTPRecipientsRefused({}), FailureKind.OTHER),
    (smtplib.SMTPDataError(554, b"rejected"), FailureKind.OTHER),
    (ValueError("odd"), FailureKind.OTHER),
])
def test_classify(exc, kind):
    assert classify(exc) is kind


def test_send_returns_receipt(fake_smtp, relay_config, message):
    receipt = SMTPTransport(relay_config).send(message)

    assert receipt.message_id.startswith("<")
    assert receipt.message_id.endswith("@example.com>")
    assert receipt.response == "250 2.0.0 OK queued as ABC123"

    server = fake_smtp.instances[0]
    assert (server.host, server.port, server.timeout) == ("smtp.example.com", 587, 10.0)
    assert server.calls == ["connect", "ehlo", "starttls", "ehlo", "login", "mail", "rcpt", "data", "quit"]
    assert server.closed


def test_send_builds_expected_headers(fake_smtp, relay_config, message):
    receipt = SMTPTransport(relay_config).send(message)
    payload = fake_smtp.instances[0].data_payload

    assert b"\r\n" in payload
    assert b"To: inbox@example.com" in payload
    assert b"Reply-To: a@x.com" in payload
    assert b"From: Liquidata Contact Form <forms@example.com>" in payload
    assert f"Message-ID: {receipt.message_id}".encode() in payload
    assert b"multipart/alternative" in payload


def test_reply_to_cannot_inject_headers(fake_smtp, relay_config, message):
    message.reply_to = "a@x.com\r\nBcc: victim@example.com"
    SMTPTransport(relay_config).send(message)
    assert b"\r\nBcc:" not in fake_smtp.instances[0].data_payload


def test_starttls_skipped_when_not_offered(fake_smtp, relay_config, message):
    fake_smtp.offers_starttls = False
    SMTPTransport(relay_config).send(message)
    assert "starttls" not in fake_smtp.instances[0].calls


def test_implicit_tls_port_skips_starttls(fake_smtp, relay_config, message):
    SMTPTransport(replace(relay_config, port=465)).send(message)
    assert fake_smtp.instances[0].calls == ["connect", "login", "mail", "rcpt", "data", "quit"]


@pytest.mark.parametrize("step,exc,kind", [
    ("login", smtplib.SMTPAuthenticationError(535, b"bad credentials"), FailureKind.AUTH),
    ("connect", ConnectionRefusedError(111, "Connection refused"), FailureKind.CONNECTION),
    ("connect", socket.timeout("timed out"), FailureKind.TIMEOUT),
    ("data", smtplib.SMTPDataError(554, b"message rejected"), FailureKind.OTHER),
])
def test_send_failures_raise_transport_error(fake_smtp, relay_config, message, step, exc, kind):
    fake_smtp.fail_on = step
    fake_smtp.error = exc

    with pytest.raises(TransportError) as err:
        SMTPTransport(relay_config).send(message)

    assert err.value.kind is kind
    assert err.value.__cause__ is exc


def test_refused_recipient_is_other(fake_smtp, relay_config, message):
    fake_smtp.rcpt_reply = (550, b"5.1.1 no such user")
    with pytest.raises(TransportError) as err:
        SMTPTransport(relay_config).send(message)
    assert err.value.kind is FailureKind.OTHER


def test_failed_ehlo_closes_connection(fake_smtp, relay_config, message):
    fake_smtp.fail_on = "ehlo"
    fake_smtp.error = smtplib.SMTPServerDisconnected("gone")
    with pytest.raises(TransportError):
        SMTPTransport(relay_config).send(message)
    assert fake_smtp.instances[0].closed


def test_verify(fake_smtp, relay_config):
    assert SMTPTransport(relay_config).verify() is True
    assert fake_smtp.instances[0].calls[-2:] == ["login", "quit"]

    fake_smtp.fail_on = "login"
    fake_smtp.error = smtplib.SMTPAuthenticationError(535, b"bad credentials")
    assert SMTPTransport(relay_config).verify() is False


def _disconnected_by_timeout():
    """What smtplib raises when a connected server stops answering."""
    try:
        try:
            raise TimeoutError("timed out")
        except TimeoutError as e:
            raise smtplib.SMTPServerDisconnected(f"Connection unexpectedly closed: {e}")
    except smtplib.SMTPServerDisconnected as e:
        return e


def test_classify_disconnect_caused_by_timeout():
    assert classify(_disconnected_by_timeout()) is FailureKind.TIMEOUT


@pytest.mark.parametrize("step", ["ehlo", "mail", "data"])
def test_silent_server_is_timeout(fake_smtp, relay_config, message, step):
    fake_smtp.fail_on = step
    fake_smtp.error = _disconnected_by_timeout()

    with pytest.raises(TransportError) as err:
        SMTPTransport(relay_config).send(message)

    assert err.value.kind is FailureKind.TIMEOUT
    assert fake_smtp.instances[0].closed


def test_silent_server_maps_to_gateway_timeout(fake_smtp, relay_config, make_relay, submission):
    fake_smtp.fail_on = "data"
    fake_smtp.error = _disconnected_by_timeout()

    result = make_relay(SMTPTransport(relay_config)).handle(submission)

    assert result.outcome is Outcome.TIMEOUT


def test_bad_quit_reply_after_accepted_data_still_delivers(fake_smtp, relay_config, message):
    fake_smtp.fail_on = "quit"
    fake_smtp.error = smtplib.SMTPResponseException(421, b"4.4.2 closing")

    receipt = SMTPTransport(relay_config).send(message)

    assert receipt.response == "250 2.0.0 OK queued as ABC123"
    assert fake_smtp.instances[0].closed
