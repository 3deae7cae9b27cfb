from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, hmac

from qrticket import constants as qcst
from qrticket import utils
from qrticket.logging_utils import get_logger
from qrticket.security.tokens.errors import ConfigError, CryptoError, TokenError, ValidationError
from qrticket.security.tokens.models import GenerationResult, QrPayload, TicketIdentity, Token, TokenBatch

logger = get_logger(__name__)

Secret = str | bytes


def secret_to_bytes(secret: Secret | None) -> bytes:
    """
    Normalises the signing secret to the raw HMAC key.

    Args:
        secret (str | bytes | None): The secret from build or deploy configuration.

    Returns:
        bytes: The UTF-8 bytes of a string secret, or the bytes unchanged.

    Raises:
        ConfigError: If the secret is missing or empty.
    """
    if secret is None or len(secret) == 0:
        raise ConfigError()
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return bytes(secret)


def create_identity(booking_id: str | None, ticket_id: str | None) -> TicketIdentity:
    if not isinstance(booking_id, str) or not isinstance(ticket_id, str) or not booking_id or not ticket_id:
        raise ValidationError()
    return TicketIdentity(booking_id=booking_id, ticket_id=ticket_id)


def build_payload_base(booking_id: str, ticket_id: str, slot: int) -> str:
    # Field order and separator are part of the wire contract
    return qcst.PAYLOAD_SEPARATOR.join((booking_id, ticket_id, str(slot)))


def _hmac(key: bytes, message: str, failure_prefix: str = qcst.GENERATION_FAILED_PREFIX) -> hmac.HMAC:
    try:
        h = hmac.HMAC(key, hashes.SHA256())
        h.update(message.encode("utf-8"))
    except (UnsupportedAlgorithm, TypeError, ValueError) as e:
        raise CryptoError(e, failure_prefix) from e
    return h


def _sign(key: bytes, message: str) -> str:
    """
    Signs a message using HMAC (SHA-256) and returns the digest as lowercase hex.

    Args:
        key (bytes): The HMAC key.
        message (str): The canonical payload base.

    Returns:
        str: 64 lowercase hex characters.
    """
    return _hmac(key, message).finalize().hex()


def _verify(key: bytes, message: str, signature: str) -> bool:
    """
    Checks a hex signature against a message in constant time.

    Returns:
        bool: True if the signature matches, False otherwise.
    """
    try:
        expected = bytes.fromhex(signature)
    except ValueError:
        return False
    try:
        _hmac(key, message, qcst.VERIFICATION_FAILED_PREFIX).verify(expected)
    except InvalidSignature:
        return False
    return True


def compute_signature(secret: Secret, booking_id: str, ticket_id: str, slot: int) -> str:
    return _sign(secret_to_bytes(secret), build_payload_base(booking_id, ticket_id, slot))


def verify_signature(secret: Secret, booking_id: str, ticket_id: str, slot: int, signature: str) -> bool:
    return _verify(secret_to_bytes(secret), build_payload_base(booking_id, ticket_id, slot), signature)


def _sign_slot(identity: TicketIdentity, key: bytes, slot: int) -> Token:
    signature = _sign(key, build_payload_base(identity.booking_id, identity.ticket_id, slot))
    payload = QrPayload(
        booking_id=identity.booking_id,
        ticket_id=identity.ticket_id,
        ts=slot,
        sig=signature,
    )
    return Token(qr_value=payload.to_qr_value(), expires_at=utils.slot_expires_at(slot))


def sign_slot(identity: TicketIdentity, secret: Secret, slot: int) -> Token:
    """
    Creates the token for a single slot.

    Args:
        identity (TicketIdentity): The ticket being authenticated.
        secret (str | bytes): The shared signing secret.
        slot (int): The time slot to sign.

    Returns:
        Token: The QR value for the slot and the instant it stops being valid.
    """
    return _sign_slot(identity, secret_to_bytes(secret), slot)


def derive_tokens(
    identity: TicketIdentity,
    secret: Secret | None,
    now_ms: int | None = None,
    lookahead: int = qcst.DEFAULT_LOOKAHEAD,
) -> TokenBatch:
    """
    Derives the tokens for the current slot and the `lookahead - 1` slots after it.

    The token for the current slot never expires before `now_ms`, and the extra slots let a
    token rendered near the end of a window stay displayable while the next one is shown.

    Args:
        identity (TicketIdentity): The ticket being authenticated.
        secret (str | bytes | None): The shared signing secret.
        now_ms (int | None): Wall clock in epoch milliseconds. Reads the system clock when None.
        lookahead (int): How many consecutive slots to sign, at least 1.

    Returns:
        TokenBatch: The rotation window and the tokens in ascending slot order.

    Raises:
        ValidationError: If `lookahead` or `now_ms` is out of range.
        ConfigError: If the secret is missing or empty.
        CryptoError: If the HMAC primitive fails.
    """
    if isinstance(lookahead, bool) or not isinstance(lookahead, int) or lookahead < 1:
        raise ValidationError(f"lookahead must be a positive integer, got {lookahead!r}")
    key = secret_to_bytes(secret)

    if now_ms is None:
        now_ms = utils.current_epoch_millis()
    elif isinstance(now_ms, bool) or not isinstance(now_ms, int) or now_ms < 0:
        raise ValidationError(f"now_ms must be a non-negative integer, got {now_ms!r}")

    base_slot = utils.compute_time_slot(now_ms)
    tokens = tuple(_sign_slot(identity, key, base_slot + i) for i in range(lookahead))
    logger.debug(f"Derived {len(tokens)} tokens starting at slot {base_slot}")
    return TokenBatch(window_ms=qcst.QR_WINDOW_MS, tokens=tokens)


def generate_tokens(
    booking_id: str | None,
    ticket_id: str | None,
    secret: Secret | None,
    now_ms: int | None = None,
    lookahead: int = qcst.DEFAULT_LOOKAHEAD,
) -> GenerationResult:
    """
    Host facing entry point. Never raises: every failure comes back as a GenerationResult
    carrying a ValidationError, ConfigError or CryptoError, and the caller must not render a
    QR code unless `result.ok`.
    """
    try:
        identity = create_identity(booking_id, ticket_id)
        batch = derive_tokens(identity, secret, now_ms=now_ms, lookahead=lookahead)
    except TokenError as e:
        logger.error(f"QR token generation failed ({e.kind.value}): {e.message}")
        return GenerationResult(error=e)
    except Exception as e:
        logger.exception("Unexpected failure while generating QR tokens")
        error = CryptoError(e)
        error.__cause__ = e
        return GenerationResult(error=error)
    return GenerationResult(batch=batch)
