import argparse
import sys
from typing import List, Optional

from crr_pilot.commands import configure_logging
from crr_pilot.config.environments import (
    DEFAULT_DEST_REGION,
    DEFAULT_REGION,
    DEFAULT_ROLE_NAME,
    SetupConfig,
)
from crr_pilot.errors import ReplicationError
from crr_pilot.session import ClientFactory
from crr_pilot.workflows.setup import run_setup


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crr-setup", description="Set up S3 cross-region replication between two buckets"
    )
    parser.add_argument("--source-bucket", required=True, help="Source bucket name")
    parser.add_argument("--source-region", default=DEFAULT_REGION, help="Source bucket region")
    parser.add_argument("--dest-bucket", required=True, help="Destination bucket name")
    parser.add_argument(
        "--dest-region", default=DEFAULT_DEST_REGION, help="Destination bucket region"
    )
    parser.add_argument(
        "--role-name", default=DEFAULT_ROLE_NAME, help="IAM role name for replication"
    )
    parser.add_argument("--profile", default=None, help="AWS profile to use (optional)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None, clients: Optional[ClientFactory] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = SetupConfig(
            source_bucket=args.source_bucket,
            dest_bucket=args.dest_bucket,
            source_region=args.source_region,
            dest_region=args.dest_region,
            role_name=args.role_name,
            profile=args.profile,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    clients = clients or ClientFactory(profile=config.profile, default_region=config.source_region)
    try:
        run_setup(
            config,
            s3_source=clients.s3(config.source_region),
            s3_dest=clients.s3(config.dest_region),
            iam=clients.iam(),
        )
    except ReplicationError as e:
        print(f"Replication setup failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
