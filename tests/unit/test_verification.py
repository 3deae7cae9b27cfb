import json

import pytest
from cryptography.exceptions import UnsupportedAlgorithm

from qrticket import constants as qcst
from qrticket.security.tokens import operations, verification
from qrticket.security.tokens.errors import ConfigError, CryptoError
from qrticket.security.tokens.models import QrPayload, VerifierPolicy

WINDOW = qcst.QR_WINDOW_MS
T = 1000 * WINDOW + 5_000

CURRENT_SLOT_ONLY = VerifierPolicy(grace_slots=0, future_slots=0)


@pytest.fixture
def tokens(identity, secret):
    return operations.derive_tokens(identity, secret, now_ms=T, lookahead=2).tokens


def _qr_value(**fields) -> str:
    return json.dumps(fields, separators=(",", ":"))


class TestEndToEnd:
    """Generator and verifier agree on slot 1000 at T, 5 seconds into the window."""

    def test_accepted_in_same_window(self, tokens, secret):
        for now_ms in (T, T + 9_999):
            result = verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=now_ms, policy=CURRENT_SLOT_ONLY)
            assert result.accepted
            assert result.payload.ts == 1000
            assert result.payload.booking_id == "B1"

    def test_rejected_after_window_when_only_current_slot_accepted(self, tokens, secret):
        result = verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T + WINDOW + 1, policy=CURRENT_SLOT_ONLY)
        assert not result.accepted
        assert result.payload is None

    def test_lookahead_token_takes_over(self, tokens, secret):
        result = verification.verify_qr_value(tokens[1].qr_value, secret, now_ms=T + WINDOW + 1, policy=CURRENT_SLOT_ONLY)
        assert result.accepted

    def test_strict_policy_matches_expiry(self, tokens, secret):
        expires_at = tokens[0].expires_at
        assert verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=expires_at - 1, policy=CURRENT_SLOT_ONLY).accepted
        assert not verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=expires_at, policy=CURRENT_SLOT_ONLY).accepted


class TestPolicy:
    """Accepted slot range around the verifier's own slot."""

    def test_default_accepts_previous_slot(self, tokens, secret):
        assert verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T + WINDOW).accepted

    def test_default_rejects_two_slots_old(self, tokens, secret):
        assert not verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T + 2 * WINDOW).accepted

    def test_default_accepts_next_slot(self, tokens, secret):
        assert verification.verify_qr_value(tokens[1].qr_value, secret, now_ms=T).accepted

    def test_future_slot_rejected_without_allowance(self, tokens, secret):
        policy = VerifierPolicy(grace_slots=1, future_slots=0)
        assert not verification.verify_qr_value(tokens[1].qr_value, secret, now_ms=T, policy=policy).accepted

    def test_wider_grace(self, tokens, secret):
        policy = VerifierPolicy(grace_slots=3, future_slots=0)
        assert verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T + 3 * WINDOW, policy=policy).accepted
        assert not verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T + 4 * WINDOW, policy=policy).accepted

    def test_uses_system_clock(self, tokens, secret, monkeypatch):
        monkeypatch.setattr(verification.utils, "current_epoch_millis", lambda: T)
        assert verification.verify_qr_value(tokens[0].qr_value, secret).accepted


class TestRejection:
    """Forged, tampered and malformed tokens are rejected without raising."""

    def test_wrong_secret(self, tokens):
        assert not verification.verify_qr_value(tokens[0].qr_value, "other-secret", now_ms=T).accepted

    def test_tampered_signature(self, tokens, secret):
        payload = json.loads(tokens[0].qr_value)
        payload["sig"] = ("0" if payload["sig"][0] != "0" else "1") + payload["sig"][1:]
        assert not verification.verify_qr_value(json.dumps(payload), secret, now_ms=T).accepted

    @pytest.mark.parametrize("field, value", [("bookingId", "B2"), ("ticketId", "T2"), ("ts", 1001)])
    def test_tampered_fields(self, tokens, secret, field, value):
        payload = json.loads(tokens[0].qr_value)
        payload[field] = value
        assert not verification.verify_qr_value(json.dumps(payload), secret, now_ms=T).accepted

    @pytest.mark.parametrize(
        "qr_value",
        [
            "",
            "not json",
            "[]",
            '{"bookingId":"B1","ticketId":"T1","ts":1000}',
            '{"bookingId":"","ticketId":"T1","ts":1000,"sig":"' + "a" * 64 + '"}',
            '{"bookingId":"B1","ticketId":"T1","ts":"soon","sig":"' + "a" * 64 + '"}',
            '{"bookingId":"B1","ticketId":"T1","ts":1000.5,"sig":"' + "a" * 64 + '"}',
            '{"bookingId":"B1","ticketId":"T1","ts":-1,"sig":"' + "a" * 64 + '"}',
        ],
    )
    def test_malformed(self, secret, qr_value):
        result = verification.verify_qr_value(qr_value, secret, now_ms=T)
        assert not result.accepted
        assert result.payload is None

    def test_uppercase_signature_rejected(self, tokens, secret):
        payload = json.loads(tokens[0].qr_value)
        payload["sig"] = payload["sig"].upper()
        assert not verification.verify_qr_value(json.dumps(payload), secret, now_ms=T).accepted

    def test_rejections_are_indistinguishable(self, tokens, secret):
        forged = verification.verify_qr_value(tokens[0].qr_value, "other-secret", now_ms=T)
        expired = verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T + 5 * WINDOW)
        garbage = verification.verify_qr_value("garbage", secret, now_ms=T)
        assert forged == expired == garbage


class TestParsing:
    def test_string_slot_is_accepted(self, secret):
        sig = operations.compute_signature(secret, "B1", "T1", 1000)
        qr_value = _qr_value(bookingId="B1", ticketId="T1", ts="1000", sig=sig)
        assert verification.verify_qr_value(qr_value, secret, now_ms=T).accepted

    def test_unknown_keys_ignored(self, secret):
        sig = operations.compute_signature(secret, "B1", "T1", 1000)
        qr_value = _qr_value(bookingId="B1", ticketId="T1", ts=1000, sig=sig, v=2)
        assert verification.verify_qr_value(qr_value, secret, now_ms=T).accepted

    def test_parse_round_trip(self, tokens):
        payload = verification.parse_qr_value(tokens[0].qr_value)
        assert isinstance(payload, QrPayload)
        assert payload.to_qr_value() == tokens[0].qr_value

    def test_parse_bytes(self, tokens):
        assert verification.parse_qr_value(tokens[0].qr_value.encode()) is not None


class TestConfiguration:
    @pytest.mark.parametrize("bad_secret", ["", None])
    def test_missing_secret_raises(self, tokens, bad_secret):
        with pytest.raises(ConfigError):
            verification.verify_qr_value(tokens[0].qr_value, bad_secret, now_ms=T)

    def test_missing_secret_raises_for_garbage_input(self):
        with pytest.raises(ConfigError):
            verification.verify_qr_value("garbage", "", now_ms=T)

    def test_primitive_failure_is_worded_for_verification(self, tokens, secret, monkeypatch):
        def unsupported(*args, **kwargs):
            raise UnsupportedAlgorithm("sha256 unavailable")

        monkeypatch.setattr(operations.hmac, "HMAC", unsupported)
        with pytest.raises(CryptoError) as exc_info:
            verification.verify_qr_value(tokens[0].qr_value, secret, now_ms=T)
        assert exc_info.value.message == "Failed to verify QR token: sha256 unavailable"
        assert isinstance(exc_info.value.__cause__, UnsupportedAlgorithm)
