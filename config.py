"""
config.py — Relay Configuration
================================
Everything the relay needs from the environment, read once at startup into
an immutable RelayConfig. Nothing else in the service touches os.environ.

Configuration (environment variables, optionally from a .env file):
  SMTP_HOST        — SMTP server hostname (required)
  SMTP_PORT        — SMTP port (required; 465 = implicit TLS, else STARTTLS)
  SMTP_USER        — Username for SMTP auth (required)
  SMTP_PASS        — Password for SMTP auth (required)
  SMTP_FROM_EMAIL  — Envelope sender / From address (required)
  SMTP_TO_EMAIL    — Where inquiries are delivered (required)
  SMTP_FROM_NAME   — Display name on the From header
  MAIL_SUBJECT     — Subject line of every relayed inquiry
  SMTP_TIMEOUT     — Socket timeout in seconds (default: 10)
  SMTP_TLS_VERIFY  — Verify the server certificate (default: true)
  APP_ENV          — "development" exposes error detail in responses
"""

import os
from dataclasses import dataclass
from typing import Mapping

from dotenv import load_dotenv

REQUIRED_VARS = (
    'SMTP_HOST',
    'SMTP_PORT',
    'SMTP_USER',
    'SMTP_PASS',
    'SMTP_FROM_EMAIL',
    'SMTP_TO_EMAIL',
)

DEFAULT_FROM_NAME = 'Liquidata Contact Form'
DEFAULT_SUBJECT = 'New Contact Form Submission - Liquidata'
DEFAULT_TIMEOUT = 10.0

IMPLICIT_TLS_PORT = 465


class ConfigError(ValueError):
    """Raised when the environment cannot produce a usable RelayConfig."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


@dataclass(frozen=True)
class RelayConfig:
    host: str
    port: int
    username: str
    password: str
    from_email: str
    to_email: str
    from_name: str = DEFAULT_FROM_NAME
    subject: str = DEFAULT_SUBJECT
    timeout: float = DEFAULT_TIMEOUT
    tls_verify: bool = True
    environment: str = 'production'

    @property
    def secure(self) -> bool:
        return self.port == IMPLICIT_TLS_PORT

    @property
    def is_development(self) -> bool:
        return self.environment == 'development'

    def summary(self) -> dict:
        """Credential-free view for the health endpoint."""
        return {
            "host":        self.host,
            "port":        self.port,
            "from":        self.from_email,
            "to":          self.to_email,
            "auth":        bool(self.username),
            "tls":         "implicit" if self.secure else "starttls",
            "tls_verify":  self.tls_verify,
            "timeout":     self.timeout,
            "environment": self.environment,
        }


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def load_config(environ: Mapping[str, str] | None = None) -> RelayConfig:
    """
    Build a RelayConfig from environment variables.
    Raises ConfigError naming every missing required variable; the relay
    must not become operational on a partial configuration.
    """
    env = os.environ if environ is None else environ

    missing = [name for name in REQUIRED_VARS if not env.get(name, '').strip()]
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing=missing,
        )

    try:
        port = int(env['SMTP_PORT'])
    except ValueError:
        raise ConfigError(f"SMTP_PORT must be an integer, got {env['SMTP_PORT']!r}")
    if not 0 < port < 65536:
        raise ConfigError(f"SMTP_PORT out of range: {port}")

    try:
        timeout = float(env.get('SMTP_TIMEOUT') or DEFAULT_TIMEOUT)
    except ValueError:
        raise ConfigError(f"SMTP_TIMEOUT must be a number, got {env['SMTP_TIMEOUT']!r}")
    if timeout <= 0:
        raise ConfigError(f"SMTP_TIMEOUT must be positive, got {timeout}")

    return RelayConfig(
        host=env['SMTP_HOST'].strip(),
        port=port,
        username=env['SMTP_USER'].strip(),
        password=env['SMTP_PASS'],
        from_email=env['SMTP_FROM_EMAIL'].strip(),
        to_email=env['SMTP_TO_EMAIL'].strip(),
        from_name=env.get('SMTP_FROM_NAME') or DEFAULT_FROM_NAME,
        subject=env.get('MAIL_SUBJECT') or DEFAULT_SUBJECT,
        timeout=timeout,
        tls_verify=_parse_bool(env.get('SMTP_TLS_VERIFY', 'true')),
        environment=(env.get('APP_ENV') or 'production').strip().lower(),
    )


def load_environment(dotenv_path: str | None = None) -> None:
    """Load a .env file into os.environ. Variables already set are kept."""
    load_dotenv(dotenv_path, override=False)
