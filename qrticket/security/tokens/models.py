import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from qrticket import constants as qcst

if TYPE_CHECKING:
    from qrticket.security.tokens.errors import TokenError


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFIG = "config"
    CRYPTO = "crypto"


class ScanStatus(str, Enum):
    OK = "ok"
    ALREADY_USED = "already_used"
    ALREADY_VALIDATED = "already_validated"
    ALREADY_ENTERED = "already_entered"
    REJECTED = "rejected"


class TicketIdentity(BaseModel):
    """
    Identifies what a token authenticates.

    Attributes:
        booking_id (str): Booking the ticket belongs to.
        ticket_id (str): Ticket type held by the booking.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    booking_id: str = Field(alias=qcst.QR_BOOKING_ID, min_length=1)
    ticket_id: str = Field(alias=qcst.QR_TICKET_ID, min_length=1)


class QrPayload(BaseModel):
    """
    The object encoded inside a QR symbol. Field order is the wire order.

    Attributes:
        booking_id (str): Booking id, serialised as `bookingId`.
        ticket_id (str): Ticket id, serialised as `ticketId`.
        ts (int): The time slot the signature was computed for.
        sig (str): Lowercase hex HMAC-SHA256 of `bookingId:ticketId:ts`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    booking_id: str = Field(alias=qcst.QR_BOOKING_ID, min_length=1)
    ticket_id: str = Field(alias=qcst.QR_TICKET_ID, min_length=1)
    ts: int = Field(alias=qcst.QR_TIMESTAMP, ge=0)
    sig: str = Field(alias=qcst.QR_SIGNATURE, pattern=r"^[0-9a-f]{64}$")

    @property
    def identity(self) -> TicketIdentity:
        return TicketIdentity(booking_id=self.booking_id, ticket_id=self.ticket_id)

    def to_qr_value(self) -> str:
        # Compact and unescaped, byte-for-byte what JSON.stringify produces for the same object
        return json.dumps(self.model_dump(by_alias=True), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_qr_value(cls, qr_value: str | bytes) -> "QrPayload":
        return cls.model_validate_json(qr_value)


class Token(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    qr_value: str = Field(alias="qrValue")
    expires_at: int = Field(alias="expiresAt")


class TokenBatch(BaseModel):
    """
    Currently valid tokens for one ticket: the current slot followed by the lookahead slots.

    Attributes:
        window_ms (int): Rotation window, always QR_WINDOW_MS.
        tokens (tuple[Token, ...]): Tokens in ascending slot order.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    window_ms: int = Field(alias="windowMs")
    tokens: tuple[Token, ...]

    def to_host_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def to_host_json(self) -> str:
        return json.dumps(self.to_host_dict(), separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class GenerationResult:
    """
    Explicit outcome of token generation. Exactly one of `batch` and `error` is set.
    """

    batch: Optional[TokenBatch] = None
    error: Optional["TokenError"] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return None if self.error is None else self.error.kind

    @property
    def message(self) -> Optional[str]:
        return None if self.error is None else self.error.message

    def unwrap(self) -> TokenBatch:
        if self.error is not None:
            raise self.error
        assert self.batch is not None
        return self.batch


class VerifierPolicy(BaseModel):
    """
    Which slots a verifier accepts relative to its own current slot.

    Attributes:
        grace_slots (int): How many slots behind the current one are still accepted.
            0 means a token is only accepted until its own `expiresAt`.
        future_slots (int): How many slots ahead are accepted, so a generator's lookahead
            token and small clock skew do not cause a rejection.
    """

    model_config = ConfigDict(frozen=True)

    grace_slots: int = Field(default=qcst.DEFAULT_GRACE_SLOTS, ge=0)
    future_slots: int = Field(default=qcst.DEFAULT_FUTURE_SLOTS, ge=0)

    def accepts_slot(self, slot: int, now_slot: int) -> bool:
        return now_slot - self.grace_slots <= slot <= now_slot + self.future_slots


class VerificationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool
    payload: Optional[QrPayload] = None


class CheckInRecord(BaseModel):
    """
    What a scanning point knows about one ticket.

    Attributes:
        validated_at (int | None): When the ticket passed the validation step, in epoch ms.
        scanned_at (int | None): When the holder was let in, in epoch ms.
    """

    booking_id: str
    ticket_id: str
    validated_at: Optional[int] = None
    scanned_at: Optional[int] = None

    @property
    def last_activity(self) -> int:
        return max(t for t in (self.validated_at, self.scanned_at) if t is not None)
