# Rotation granularity of a token. Part of the wire contract with every verifier.
QR_WINDOW_MS = 15_000

DEFAULT_LOOKAHEAD = 2
DEFAULT_GRACE_SLOTS = 1
DEFAULT_FUTURE_SLOTS = 1

PAYLOAD_SEPARATOR = ":"

# Keys of the serialised QR payload, in wire order
QR_BOOKING_ID = "bookingId"
QR_TICKET_ID = "ticketId"
QR_TIMESTAMP = "ts"
QR_SIGNATURE = "sig"

SIGNATURE_HEX_LENGTH = 64

# Env vars
QR_SECRET_ENV = "QR_SECRET"
QR_LOOKAHEAD_ENV = "QR_LOOKAHEAD"
QR_GRACE_SLOTS_ENV = "QR_GRACE_SLOTS"
QR_FUTURE_SLOTS_ENV = "QR_FUTURE_SLOTS"
LOG_LEVEL_ENV = "LOG_LEVEL"

# Human readable failures surfaced to the host application
IDENTITY_REQUIRED_MESSAGE = "bookingId and ticketId are required"
SECRET_NOT_CONFIGURED_MESSAGE = "QR_SECRET not configured in build"
GENERATION_FAILED_PREFIX = "Failed to generate QR tokens: "
VERIFICATION_FAILED_PREFIX = "Failed to verify QR token: "
