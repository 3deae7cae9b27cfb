from pydantic import ValidationError as PayloadValidationError

from qrticket import utils
from qrticket.logging_utils import get_logger
from qrticket.security.tokens import operations
from qrticket.security.tokens.models import QrPayload, VerificationResult, VerifierPolicy

logger = get_logger(__name__)

_REJECTED = VerificationResult(accepted=False)


def parse_qr_value(qr_value: str | bytes) -> QrPayload | None:
    """
    Parses a scanned QR value back into its payload.

    `ts` is accepted as an integer or an integral numeric string. Unknown keys are ignored so a
    later payload revision can add fields without breaking this verifier.

    Returns:
        QrPayload | None: The payload, or None if the value is not a well formed token.
    """
    try:
        return QrPayload.from_qr_value(qr_value)
    except (PayloadValidationError, ValueError, TypeError):
        return None


def verify_payload(
    payload: QrPayload,
    secret: operations.Secret | None,
    now_ms: int | None = None,
    policy: VerifierPolicy | None = None,
) -> bool:
    """
    Recomputes the signature for the claimed slot and checks the slot against the policy.

    Both checks always run so the time taken does not reveal which one failed.

    Raises:
        ConfigError: If the secret is missing or empty.
        CryptoError: If the HMAC primitive fails.
    """
    policy = policy or VerifierPolicy()
    if now_ms is None:
        now_ms = utils.current_epoch_millis()

    signature_ok = operations.verify_signature(
        secret, payload.booking_id, payload.ticket_id, payload.ts, payload.sig
    )
    slot_ok = policy.accepts_slot(payload.ts, utils.compute_time_slot(now_ms))

    if not signature_ok:
        logger.debug("QR token rejected: signature mismatch")
    elif not slot_ok:
        logger.debug(f"QR token rejected: slot {payload.ts} outside accepted range")
    return signature_ok & slot_ok


def verify_qr_value(
    qr_value: str | bytes,
    secret: operations.Secret | None,
    now_ms: int | None = None,
    policy: VerifierPolicy | None = None,
) -> VerificationResult:
    """
    Verifies a scanned QR value. A rejection is a normal outcome, not an error, and the result
    carries no reason.

    Args:
        qr_value (str | bytes): The content read from the QR symbol.
        secret (str | bytes | None): The shared signing secret.
        now_ms (int | None): Verifier wall clock in epoch milliseconds. Reads the system clock when None.
        policy (VerifierPolicy | None): Accepted slot range. Defaults to previous, current and next slot.

    Returns:
        VerificationResult: Accepted with the parsed payload, or rejected with no payload.

    Raises:
        ConfigError: If the secret is missing or empty.
        CryptoError: If the HMAC primitive fails.
    """
    # Secret presence is a deployment defect and must surface even for garbage input
    operations.secret_to_bytes(secret)

    payload = parse_qr_value(qr_value)
    if payload is None:
        logger.debug("QR token rejected: malformed payload")
        return _REJECTED

    if not verify_payload(payload, secret, now_ms=now_ms, policy=policy):
        return _REJECTED
    return VerificationResult(accepted=True, payload=payload)
