import logging
import time
from typing import Callable, Optional

from crr_pilot.config.environments import SetupConfig
from crr_pilot.models import SetupResult
from crr_pilot.resources.access import provision_role
from crr_pilot.resources.bucket import ensure_bucket, enable_versioning
from crr_pilot.resources.replication import upsert_rule

logger = logging.getLogger(__name__)


def run_setup(
    config: SetupConfig,
    s3_source,
    s3_dest,
    iam,
    echo: Callable[[str], None] = print,
    sleep: Optional[Callable[[float], None]] = None,
) -> SetupResult:
    """
    Provision replication from config.source_bucket to config.dest_bucket.

    Stages run in order and the first failure aborts the rest; nothing is
    rolled back. Not safe to run concurrently against the same source bucket.
    """
    sleep = sleep or time.sleep
    echo(
        f"Setting up replication from {config.source_bucket} ({config.source_region}) "
        f"-> {config.dest_bucket} ({config.dest_region})"
    )

    # 1) Destination bucket
    bucket = ensure_bucket(s3_dest, config.dest_bucket, config.dest_region, wait=config.bucket_wait)
    echo(f"Destination bucket {bucket.outcome.value}/ready.")

    # 2) Versioning on both ends
    enable_versioning(s3_source, config.source_bucket)
    echo("Versioning enabled on source bucket.")
    enable_versioning(s3_dest, config.dest_bucket)
    echo("Versioning enabled on destination bucket.")

    # 3) Replication role
    role = provision_role(
        iam,
        config.role_name,
        config.source_bucket,
        config.dest_bucket,
        policy=config.propagation,
        sleep=sleep,
    )
    echo(f"Replication role {role.outcome.value}: {role.handle}")

    # 4) Replication rule
    rule = upsert_rule(s3_source, config.source_bucket, config.dest_bucket, role.handle)
    echo(
        f"Replication rule {rule.rule['ID']} {rule.change.value} "
        f"(priority {rule.rule['Priority']}) on source bucket."
    )

    echo("Cross-region replication setup complete.")
    logger.info(
        "Replication %s -> %s ready with role %s",
        config.source_bucket,
        config.dest_bucket,
        role.handle,
    )
    return SetupResult(bucket=bucket, role=role, role_arn=role.handle, rule=rule)
