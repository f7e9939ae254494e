"""
relay.py — Submission Relay
============================
Executes the relay steps for every contact-form submission.
Each step is a rejection point. Transport is the last step.

Steps:
1. Validate required fields (client error, never reaches the transport)
2. Check the relay is configured (fail closed)
3. Render the inquiry
4. Hand off to transport (single attempt, no retry)
5. Map the outcome onto the error taxonomy

HTTP status codes are not decided here; main.py maps Outcome to a status.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable

import templates
from config import RelayConfig
from transport import FailureKind, SMTPTransport, TransportError, TransportMessage

log = logging.getLogger(__name__)


class Outcome(Enum):
    SENT = "sent"
    INVALID = "invalid"            # ClientValidationError
    UNAVAILABLE = "unavailable"    # ServiceUnavailable (auth / connection)
    TIMEOUT = "timeout"            # GatewayTimeout
    INTERNAL = "internal"          # InternalError (unconfigured / unclassified)


# Every FailureKind must appear here.
FAILURE_OUTCOMES: dict[FailureKind, Outcome] = {
    FailureKind.AUTH:       Outcome.UNAVAILABLE,
    FailureKind.CONNECTION: Outcome.UNAVAILABLE,
    FailureKind.TIMEOUT:    Outcome.TIMEOUT,
    FailureKind.OTHER:      Outcome.INTERNAL,
}

GENERIC_MESSAGES: dict[Outcome, str] = {
    Outcome.UNAVAILABLE: "Email service temporarily unavailable",
    Outcome.TIMEOUT:     "Email service timed out",
    Outcome.INTERNAL:    "Failed to send email",
}


@dataclass
class RelayResult:
    outcome: Outcome
    message_id: str | None = None
    response: str | None = None
    error_message: str | None = None
    detail: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SENT


class SubmissionRelay:
    """
    validate -> render -> relay -> map outcome.
    `config` and `transport` are None when startup configuration failed; the
    relay then answers every valid submission with an internal error.
    """

    def __init__(
        self,
        config: RelayConfig | None,
        transport: SMTPTransport | None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.transport = transport
        self.clock = clock

    @property
    def configured(self) -> bool:
        return self.config is not None and self.transport is not None

    def _fail(self, outcome: Outcome, exc: BaseException | None = None) -> RelayResult:
        detail = None
        if exc is not None and self.config is not None and self.config.is_development:
            detail = str(exc)
        return RelayResult(outcome=outcome, error_message=GENERIC_MESSAGES[outcome], detail=detail)

    def handle(self, payload: Any) -> RelayResult:
        tag = uuid.uuid4().hex[:8]

        # ── Step 1: Validate ──────────────────────────────────────────────────
        missing = templates.missing_fields(payload)
        if missing:
            message = f"Missing required fields: {', '.join(missing)}"
            log.warning(f"[{tag}] Submission rejected: {message}")
            return RelayResult(outcome=Outcome.INVALID, error_message=message)

        # ── Step 2: Configured? ───────────────────────────────────────────────
        if not self.configured:
            log.error(f"[{tag}] Email service not configured properly, refusing to relay")
            return self._fail(Outcome.INTERNAL)

        submission = templates.Submission.from_payload(payload)
        log.info(f"[{tag}] Relaying inquiry from {submission.email} (budget={submission.budget})")

        # ── Step 3: Render ────────────────────────────────────────────────────
        rendered = templates.render(submission, self.config.subject, self.clock())

        # ── Step 4: Hand off to transport ─────────────────────────────────────
        try:
            receipt = self.transport.send(TransportMessage(
                from_name=self.config.from_name,
                from_email=self.config.from_email,
                to_email=self.config.to_email,
                reply_to=submission.email,
                subject=rendered.subject,
                body_text=rendered.body_text,
                body_html=rendered.body_html,
            ))

        # ── Step 5: Map outcome ───────────────────────────────────────────────
        except TransportError as e:
            outcome = FAILURE_OUTCOMES[e.kind]
            log.error(f"[{tag}] Transport failed ({e.kind.value} -> {outcome.value}): {e}")
            return self._fail(outcome, e)
        except Exception as e:
            log.exception(f"[{tag}] Unexpected transport error: {e}")
            return self._fail(Outcome.INTERNAL, e)

        log.info(f"[{tag}] Sent {receipt.message_id}")
        return RelayResult(
            outcome=Outcome.SENT,
            message_id=receipt.message_id,
            response=receipt.response,
        )
