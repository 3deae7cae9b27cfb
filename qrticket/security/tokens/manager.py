import threading

from qrticket import utils
from qrticket.logging_utils import get_logger
from qrticket.security.tokens import verification
from qrticket.security.tokens.models import CheckInRecord, QrPayload, ScanStatus, TicketIdentity, VerifierPolicy
from qrticket.security.tokens.operations import Secret

logger = get_logger(__name__)


class CheckInLedger:
    """
    Records which tickets have been validated and admitted at a scanning point, so that a valid
    token shown a second time is reported instead of admitted again.

    Two flows are supported. `check_in` verifies and admits in one step. `validate` followed
    by `record_entry` splits the check at the door from the actual entry.

    Records live in memory; call `cleanup` to drop those of a finished event.

    Attributes:
        policy (VerifierPolicy): Slot range accepted when verifying scanned tokens.
    """

    def __init__(self, policy: VerifierPolicy | None = None):
        self.policy = policy or VerifierPolicy()
        self._records: dict[tuple[str, str], CheckInRecord] = {}
        self._lock = threading.Lock()

    def _verify(self, qr_value: str | bytes, secret: Secret | None, now_ms: int) -> QrPayload | None:
        result = verification.verify_qr_value(qr_value, secret, now_ms=now_ms, policy=self.policy)
        return result.payload if result.accepted else None

    def _record_for(self, payload: QrPayload) -> CheckInRecord:
        key = (payload.booking_id, payload.ticket_id)
        record = self._records.get(key)
        if record is None:
            record = CheckInRecord(booking_id=payload.booking_id, ticket_id=payload.ticket_id)
        return record

    def _store(self, record: CheckInRecord) -> None:
        self._records[(record.booking_id, record.ticket_id)] = record

    def check_in(
        self,
        qr_value: str | bytes,
        secret: Secret | None,
        now_ms: int | None = None,
        mark_scanned: bool = True,
    ) -> ScanStatus:
        """
        Verifies a scanned token and admits its ticket at most once.

        Args:
            qr_value (str | bytes): The content read from the QR symbol.
            secret (str | bytes | None): The shared signing secret.
            now_ms (int | None): Verifier wall clock in epoch milliseconds.
            mark_scanned (bool): Record the admission. False only checks the ticket.

        Returns:
            ScanStatus: REJECTED for an invalid token, ALREADY_USED if the ticket was admitted
            before, OK otherwise.

        Raises:
            ConfigError: If the secret is missing or empty.
        """
        if now_ms is None:
            now_ms = utils.current_epoch_millis()

        payload = self._verify(qr_value, secret, now_ms)
        if payload is None:
            return ScanStatus.REJECTED

        with self._lock:
            record = self._record_for(payload)
            if record.scanned_at is not None:
                logger.info(f"Booking {payload.booking_id} already checked in")
                return ScanStatus.ALREADY_USED
            if mark_scanned:
                record.scanned_at = now_ms
                self._store(record)
                logger.info(f"Booking {payload.booking_id} checked in")
        return ScanStatus.OK

    def validate(self, qr_value: str | bytes, secret: Secret | None, now_ms: int | None = None) -> ScanStatus:
        """
        First step of the two step flow: marks a ticket as validated without admitting it.

        Returns:
            ScanStatus: REJECTED for an invalid token, ALREADY_ENTERED if the holder is already
            in, ALREADY_VALIDATED if the ticket passed this step before, OK otherwise.

        Raises:
            ConfigError: If the secret is missing or empty.
        """
        if now_ms is None:
            now_ms = utils.current_epoch_millis()

        payload = self._verify(qr_value, secret, now_ms)
        if payload is None:
            return ScanStatus.REJECTED

        with self._lock:
            record = self._record_for(payload)
            # Entry is final, a ticket cannot be validated again once its holder is in
            if record.scanned_at is not None:
                return ScanStatus.ALREADY_ENTERED
            if record.validated_at is not None:
                return ScanStatus.ALREADY_VALIDATED
            record.validated_at = now_ms
            self._store(record)
        logger.info(f"Booking {payload.booking_id} validated")
        return ScanStatus.OK

    def record_entry(self, qr_value: str | bytes, secret: Secret | None, now_ms: int | None = None) -> ScanStatus:
        """
        Second step of the two step flow: admits the holder.

        Returns:
            ScanStatus: REJECTED for an invalid token, ALREADY_ENTERED if the holder is already
            in, OK otherwise.

        Raises:
            ConfigError: If the secret is missing or empty.
        """
        if now_ms is None:
            now_ms = utils.current_epoch_millis()

        payload = self._verify(qr_value, secret, now_ms)
        if payload is None:
            return ScanStatus.REJECTED

        with self._lock:
            record = self._record_for(payload)
            if record.scanned_at is not None:
                return ScanStatus.ALREADY_ENTERED
            record.scanned_at = now_ms
            self._store(record)
        logger.info(f"Booking {payload.booking_id} entered")
        return ScanStatus.OK

    def is_validated(self, identity: TicketIdentity) -> bool:
        with self._lock:
            record = self._records.get((identity.booking_id, identity.ticket_id))
            return record is not None and record.validated_at is not None

    def is_scanned(self, identity: TicketIdentity) -> bool:
        with self._lock:
            record = self._records.get((identity.booking_id, identity.ticket_id))
            return record is not None and record.scanned_at is not None

    def reset(self, identity: TicketIdentity) -> bool:
        """
        Forgets a ticket, e.g. after a mistaken scan.

        Returns:
            bool: True if a record was removed.
        """
        with self._lock:
            return self._records.pop((identity.booking_id, identity.ticket_id), None) is not None

    def cleanup(self, older_than_ms: int) -> int:
        """
        Removes records whose last validation or entry happened before `older_than_ms`.

        Returns:
            int: The number of records removed.
        """
        with self._lock:
            stale = [key for key, record in self._records.items() if record.last_activity < older_than_ms]
            for key in stale:
                del self._records[key]
        if stale:
            logger.info(f"Removed {len(stale)} check-in records")
        return len(stale)

    def records(self) -> list[CheckInRecord]:
        with self._lock:
            return sorted(self._records.values(), key=lambda record: record.last_activity)
