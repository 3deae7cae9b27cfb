import argparse
import sys

from qrticket.core.configuration import factory_config
from qrticket.logging_utils import get_logger
from qrticket.security.tokens import operations, verification
from qrticket.security.tokens.errors import TokenError
from qrticket.security.tokens.models import VerifierPolicy

logger = get_logger(__name__)


def _generate(args: argparse.Namespace) -> int:
    config = factory_config()
    lookahead = args.lookahead if args.lookahead is not None else config.lookahead

    result = operations.generate_tokens(
        args.booking_id,
        args.ticket_id,
        config.qr_secret,
        now_ms=args.now_ms,
        lookahead=lookahead,
    )
    if not result.ok:
        print(result.message, file=sys.stderr)
        return 1

    print(result.unwrap().to_host_json())
    return 0


def _verify(args: argparse.Namespace) -> int:
    config = factory_config()
    policy = config.verifier_policy
    if args.grace_slots is not None or args.future_slots is not None:
        policy = VerifierPolicy(
            grace_slots=policy.grace_slots if args.grace_slots is None else args.grace_slots,
            future_slots=policy.future_slots if args.future_slots is None else args.future_slots,
        )

    result = verification.verify_qr_value(args.qr_value, config.qr_secret, now_ms=args.now_ms, policy=policy)

    print("accepted" if result.accepted else "rejected")
    return 0 if result.accepted else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate and verify rotating ticket QR tokens")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Print the current tokens for a ticket as JSON")
    generate.add_argument("--booking-id", type=str, required=True, help="Booking id")
    generate.add_argument("--ticket-id", type=str, required=True, help="Ticket id")
    generate.add_argument("--lookahead", type=int, required=False, default=None, help="Number of slots to sign")
    generate.add_argument("--now-ms", type=int, required=False, default=None, help="Override the clock (epoch ms)")
    generate.set_defaults(handler=_generate)

    verify = subparsers.add_parser("verify", help="Check a scanned QR value")
    verify.add_argument("qr_value", type=str, help="The scanned QR content")
    verify.add_argument("--now-ms", type=int, required=False, default=None, help="Override the clock (epoch ms)")
    verify.add_argument("--grace-slots", type=int, required=False, default=None, help="Past slots to accept")
    verify.add_argument("--future-slots", type=int, required=False, default=None, help="Future slots to accept")
    verify.set_defaults(handler=_verify)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except TokenError as e:
        logger.error(f"{args.command} failed: {e.message}")
        print(e.message, file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
