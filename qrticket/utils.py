import time

from qrticket import constants as qcst


def current_epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def compute_time_slot(epoch_ms: int) -> int:
    """
    Maps an instant to the slot it falls in. Every instant inside one window shares a slot.

    Args:
        epoch_ms (int): Wall clock time in milliseconds since the epoch.

    Returns:
        int: floor(epoch_ms / QR_WINDOW_MS).
    """
    return epoch_ms // qcst.QR_WINDOW_MS


def slot_expires_at(slot: int) -> int:
    return (slot + 1) * qcst.QR_WINDOW_MS
