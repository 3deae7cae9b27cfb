from dataclasses import dataclass, field

from qrticket import constants as qcst
from qrticket.security.tokens.models import VerifierPolicy


@dataclass(frozen=True)
class Config:
    qr_secret: str = field(repr=False)
    lookahead: int = qcst.DEFAULT_LOOKAHEAD
    verifier_policy: VerifierPolicy = field(default_factory=VerifierPolicy)
