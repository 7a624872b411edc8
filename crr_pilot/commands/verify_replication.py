import argparse
import sys
from typing import List, Optional

from crr_pilot.commands import configure_logging
from crr_pilot.config.environments import (
    DEFAULT_PROBE_KEY,
    DEFAULT_REGION,
    PollPolicy,
    VerifyConfig,
)
from crr_pilot.errors import ReplicationError
from crr_pilot.models import VerificationReport
from crr_pilot.session import ClientFactory
from crr_pilot.verification.poller import verify


def build_parser() -> argparse.ArgumentParser:
    defaults = PollPolicy()
    parser = argparse.ArgumentParser(
        prog="crr-verify", description="Verify S3 replication with a probe object"
    )
    parser.add_argument("--source-bucket", required=True, help="Source bucket name")
    parser.add_argument("--source-region", default=DEFAULT_REGION, help="Source bucket region")
    parser.add_argument(
        "--dest-bucket",
        default=None,
        help="Destination bucket; all destinations from the replication rules when omitted",
    )
    parser.add_argument(
        "--dest-region", default=None, help="Destination region; looked up when omitted"
    )
    parser.add_argument("--profile", default=None, help="AWS profile to use (optional)")
    parser.add_argument(
        "--key", default=DEFAULT_PROBE_KEY, help="Object key to use for verification"
    )
    parser.add_argument("--attempts", type=int, default=defaults.max_attempts)
    parser.add_argument("--interval", type=float, default=defaults.interval_seconds)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def print_summary(report: VerificationReport) -> None:
    print("\nListing objects in source bucket:")
    for key in report.source_keys:
        print(f"  {key}")

    for destination in report.destinations:
        print(
            f"\nListing objects in destination bucket: {destination.bucket} "
            f"(region: {destination.region})"
        )
        for key in destination.dest_keys:
            print(f"  {key}")
        print(
            f"\nSource bucket has {destination.source_count} objects, destination bucket "
            f"{destination.bucket} has {destination.dest_count} objects"
        )
        if destination.caught_up:
            print("Destination bucket contains all (or more) objects.")
        else:
            print("Some objects may not yet have replicated.")

    print("\nSummary:")
    for destination in report.destinations:
        status = "PASS" if destination.found else "FAIL"
        print(
            f"  [{status}] {destination.bucket} ({destination.region}): "
            f"probe {'found' if destination.found else 'not found'} after "
            f"{destination.attempts} check(s), caught up: {destination.caught_up}"
        )


def main(argv: Optional[List[str]] = None, clients: Optional[ClientFactory] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = VerifyConfig(
            source_bucket=args.source_bucket,
            source_region=args.source_region,
            dest_bucket=args.dest_bucket,
            dest_region=args.dest_region,
            profile=args.profile,
            key=args.key,
            poll=PollPolicy(max_attempts=args.attempts, interval_seconds=args.interval),
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    clients = clients or ClientFactory(profile=config.profile, default_region=config.source_region)
    try:
        report = verify(
            clients.s3(config.source_region),
            clients.s3,
            config.source_bucket,
            config.key,
            source_region=config.source_region,
            dest_bucket=config.dest_bucket,
            dest_region=config.dest_region,
            policy=config.poll,
        )
    except ReplicationError as e:
        print(f"Verification failed: {e}", file=sys.stderr)
        return 1

    print_summary(report)
    # A replication timeout is a reported result, not a process failure
    return 0


if __name__ == "__main__":
    sys.exit(main())
