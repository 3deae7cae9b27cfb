"""
Shared fixtures for the token tests.

Configuration is read from the environment and cached, so every test starts from a clean
environment and an empty `factory_config` cache.
"""

import pytest

from qrticket import constants as qcst
from qrticket.core.configuration import factory_config
from qrticket.security.tokens.models import TicketIdentity

# 5 seconds into slot 1000
SLOT = 1000
NOW_MS = SLOT * qcst.QR_WINDOW_MS + 5_000


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    for name in (
        qcst.QR_SECRET_ENV,
        qcst.QR_LOOKAHEAD_ENV,
        qcst.QR_GRACE_SLOTS_ENV,
        qcst.QR_FUTURE_SLOTS_ENV,
    ):
        monkeypatch.delenv(name, raising=False)
    factory_config.cache_clear()
    yield
    factory_config.cache_clear()


@pytest.fixture
def secret() -> str:
    return "test-secret"


@pytest.fixture
def identity() -> TicketIdentity:
    return TicketIdentity(booking_id="B1", ticket_id="T1")


@pytest.fixture
def now_ms() -> int:
    return NOW_MS
