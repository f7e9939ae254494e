"""
transport.py — Mail Transport Layer
====================================
This is the ONLY file that knows about SMTP.
Everything above this layer speaks TransportMessage / DeliveryReceipt and
handles exactly one exception type, TransportError, whose kind is one of a
closed set of failure kinds.

One SMTPTransport is built at startup from the RelayConfig and shared by all
requests. It holds no connection state: each send opens its own SMTP
session, so concurrent requests never contend for it.
"""

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.policy import compat32
from email.utils import formataddr, formatdate, make_msgid
from enum import Enum

from config import RelayConfig

log = logging.getLogger(__name__)

SMTP_WIRE_POLICY = compat32.clone(linesep='\r\n')


class FailureKind(Enum):
    AUTH = "auth"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    OTHER = "other"


class TransportError(Exception):
    """The transport's only failure signal. `kind` is always a FailureKind."""

    def __init__(self, kind: FailureKind, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass
class TransportMessage:
    """Normalized message envelope. Transport layer speaks only this."""
    from_name: str
    from_email: str
    to_email: str
    reply_to: str
    subject: str
    body_text: str
    body_html: str


@dataclass
class DeliveryReceipt:
    message_id: str
    response: str


def _header_safe(value: str) -> str:
    return " ".join(value.split())


def build_mime(msg: TransportMessage, message_id: str) -> MIMEMultipart:
    """Build a multipart/alternative message with text and HTML parts."""
    mime = MIMEMultipart('alternative')
    mime['Subject']    = _header_safe(msg.subject)
    mime['From']       = formataddr((_header_safe(msg.from_name), msg.from_email))
    mime['To']         = msg.to_email
    mime['Reply-To']   = _header_safe(msg.reply_to)
    mime['Date']       = formatdate(localtime=True)
    mime['Message-ID'] = message_id

    mime.attach(MIMEText(msg.body_text, 'plain', 'utf-8'))
    mime.attach(MIMEText(msg.body_html, 'html', 'utf-8'))

    return mime


def _timed_out(exc: BaseException | None) -> bool:
    """
    True if a TimeoutError is anywhere in the exception chain. Once connected,
    smtplib reports a socket timeout as SMTPServerDisconnected raised while
    handling the TimeoutError.
    """
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, TimeoutError):
            return True
        seen.add(id(exc))
        exc = exc.__cause__ or exc.__context__
    return False


def classify(exc: BaseException) -> FailureKind:
    """
    Map an smtplib / socket failure onto a FailureKind.
    smtplib.SMTPException subclasses OSError, so SMTP classes are checked first.
    """
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return FailureKind.AUTH
    if _timed_out(exc):
        return FailureKind.TIMEOUT
    if isinstance(exc, (smtplib.SMTPConnectError, smtplib.SMTPServerDisconnected)):
        return FailureKind.CONNECTION
    if isinstance(exc, smtplib.SMTPException):
        return FailureKind.OTHER
    if isinstance(exc, OSError):
        return FailureKind.CONNECTION
    return FailureKind.OTHER


class SMTPTransport:
    """SMTP delivery via smtplib, configured once from a RelayConfig."""

    def __init__(self, config: RelayConfig):
        self.config = config

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if not self.config.tls_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _connect(self) -> smtplib.SMTP:
        cfg = self.config
        context = self._ssl_context()

        if cfg.secure:
            return smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout, context=context)

        server = smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout)
        try:
            server.ehlo()
            if server.has_extn('starttls'):
                server.starttls(context=context)
                server.ehlo()
        except BaseException:
            server.close()
            raise
        return server

    def _close(self, server: smtplib.SMTP) -> None:
        """QUIT, then drop the socket. A bad QUIT reply never undoes an accepted DATA."""
        try:
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            log.warning(f"SMTP QUIT to {self.config.host} failed, closing anyway: {e}")
        finally:
            server.close()

    def _submit(self, server: smtplib.SMTP, msg: TransportMessage, mime: MIMEMultipart) -> str:
        """MAIL / RCPT / DATA by hand so the server's final reply can be reported."""
        code, resp = server.mail(msg.from_email)
        if code != 250:
            raise smtplib.SMTPSenderRefused(code, resp, msg.from_email)

        code, resp = server.rcpt(msg.to_email)
        if code not in (250, 251):
            raise smtplib.SMTPRecipientsRefused({msg.to_email: (code, resp)})

        # data() raises SMTPDataError on anything but 250
        code, resp = server.data(mime.as_bytes(policy=SMTP_WIRE_POLICY))
        return f"{code} {resp.decode('utf-8', 'replace')}"

    def send(self, msg: TransportMessage) -> DeliveryReceipt:
        """
        Deliver one message. Returns a DeliveryReceipt on success.
        Raises TransportError (and nothing else from smtplib) on failure.
        """
        cfg = self.config
        domain = msg.from_email.rpartition('@')[2] or None
        message_id = make_msgid(domain=domain)
        mime = build_mime(msg, message_id)

        try:
            log.info(f"[{message_id}] Connecting to SMTP {cfg.host}:{cfg.port} "
                     f"(tls={'implicit' if cfg.secure else 'starttls'})")
            server = self._connect()
            try:
                server.login(cfg.username, cfg.password)
                log.info(f"[{message_id}] Authenticated as {cfg.username}")
                response = self._submit(server, msg, mime)
            finally:
                self._close(server)
        except (smtplib.SMTPException, OSError) as e:
            kind = classify(e)
            log.error(f"[{message_id}] SMTP delivery failed ({kind.value}): {e}")
            raise TransportError(kind, str(e) or e.__class__.__name__) from e

        log.info(f"[{message_id}] Delivered: to={msg.to_email} subject='{msg.subject}' "
                 f"response='{response}'")
        return DeliveryReceipt(message_id=message_id, response=response)

    def verify(self) -> bool:
        """
        Connect and authenticate without sending anything.
        Used at startup for an early warning; never raises.
        """
        cfg = self.config
        try:
            server = self._connect()
            try:
                server.login(cfg.username, cfg.password)
            finally:
                self._close(server)
        except (smtplib.SMTPException, OSError) as e:
            log.error(f"SMTP connection check failed for {cfg.host}:{cfg.port} "
                      f"({classify(e).value}): {e}")
            return False
        log.info(f"SMTP connection verified: {cfg.host}:{cfg.port}")
        return True
