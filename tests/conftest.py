from dataclasses import replace
from datetime import datetime

import pytest

from config import RelayConfig
from relay import SubmissionRelay
from transport import DeliveryReceipt, FailureKind, TransportError

RECEIVED_AT = datetime(2024, 4, 17, 15, 4)


class StubTransport:
    """Records every message; succeeds unless built with a FailureKind."""

    def __init__(self, fail: FailureKind | None = None, exc: Exception | None = None):
        self.fail = fail
        self.exc = exc
        self.sent = []

    def send(self, msg):
        self.sent.append(msg)
        if self.exc is not None:
            raise self.exc
        if self.fail is not None:
            raise TransportError(self.fail, f"stub {self.fail.value} failure")
        return DeliveryReceipt(
            message_id=f"<stub-{len(self.sent)}@example.com>",
            response="250 2.0.0 OK queued",
        )


@pytest.fixture
def relay_config():
    return RelayConfig(
        host="smtp.example.com",
        port=587,
        username="relay-user",
        password="s3cret",
        from_email="forms@example.com",
        to_email="inbox@example.com",
    )


@pytest.fixture
def dev_config(relay_config):
    return replace(relay_config, environment="development")


@pytest.fixture
def make_relay(relay_config):
    def _make(transport=None, config=relay_config):
        return SubmissionRelay(config, transport, clock=lambda: RECEIVED_AT)
    return _make


@pytest.fixture
def submission():
    return {
        "name": "A",
        "email": "a@x.com",
        "goal": "Build site",
        "date": "2024-05-01",
        "budget": "$5k-$10k",
    }


@pytest.fixture
def stub_transport():
    return StubTransport
