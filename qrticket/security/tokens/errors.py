from qrticket import constants as qcst
from qrticket.security.tokens.models import ErrorKind


class TokenError(Exception):
    """Base class for token derivation and verification failures."""

    kind: ErrorKind

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(TokenError):
    """Raised when the ticket identity or a derivation argument is missing or malformed."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str = qcst.IDENTITY_REQUIRED_MESSAGE):
        super().__init__(message)


class ConfigError(TokenError):
    """Raised when the signing secret is missing or empty. This is a deployment defect."""

    kind = ErrorKind.CONFIG

    def __init__(self, message: str = qcst.SECRET_NOT_CONFIGURED_MESSAGE):
        super().__init__(message)


class CryptoError(TokenError):
    """Raised when the HMAC primitive is unavailable or rejects the key."""

    kind = ErrorKind.CRYPTO

    def __init__(self, cause: BaseException, prefix: str = qcst.GENERATION_FAILED_PREFIX):
        self.cause = cause
        super().__init__(f"{prefix}{cause}")
