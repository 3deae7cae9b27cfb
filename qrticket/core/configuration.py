import os
from functools import lru_cache

from dotenv import load_dotenv

from qrticket import constants as qcst
from qrticket.core.models.config import Config
from qrticket.logging_utils import get_logger
from qrticket.security.tokens.errors import ConfigError
from qrticket.security.tokens.models import VerifierPolicy

logger = get_logger(__name__)

load_dotenv()


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@lru_cache
def factory_config() -> Config:
    # An empty secret is allowed here, it is rejected when tokens are generated or verified
    qr_secret = os.getenv(qcst.QR_SECRET_ENV, "")
    lookahead = _int_from_env(qcst.QR_LOOKAHEAD_ENV, qcst.DEFAULT_LOOKAHEAD)
    grace_slots = _int_from_env(qcst.QR_GRACE_SLOTS_ENV, qcst.DEFAULT_GRACE_SLOTS)
    future_slots = _int_from_env(qcst.QR_FUTURE_SLOTS_ENV, qcst.DEFAULT_FUTURE_SLOTS)

    if lookahead < 1:
        raise ConfigError(f"{qcst.QR_LOOKAHEAD_ENV} must be at least 1, got {lookahead}")
    if grace_slots < 0 or future_slots < 0:
        raise ConfigError(f"{qcst.QR_GRACE_SLOTS_ENV} and {qcst.QR_FUTURE_SLOTS_ENV} must not be negative")

    if not qr_secret:
        logger.warning(f"{qcst.QR_SECRET_ENV} is not set; token generation will fail")

    return Config(
        qr_secret=qr_secret,
        lookahead=lookahead,
        verifier_policy=VerifierPolicy(grace_slots=grace_slots, future_slots=future_slots),
    )
