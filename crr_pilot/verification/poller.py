"""
Replication verification.

A probe object is written to the source bucket and each destination is
polled for it with a fixed budget. Object counts are compared afterwards;
a destination with at least as many objects as the source is reported as
caught up, which is a heuristic and not proof that the same keys arrived.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from crr_pilot.config.environments import (
    DEFAULT_POLL_POLICY,
    DEFAULT_REGION,
    PROBE_CONTENT,
    PollPolicy,
)
from crr_pilot.errors import (
    PROVIDER_ERRORS,
    NoDestinationsError,
    TransientProviderError,
    error_code,
)
from crr_pilot.models import DestinationReport, PollResult, VerificationProbe, VerificationReport
from crr_pilot.resources.replication import destination_buckets, get_replication_configuration

logger = logging.getLogger(__name__)

# Legacy location constraints returned by GetBucketLocation
LEGACY_REGION_ALIASES = {"EU": "eu-west-1"}


def upload_probe(
    s3_client, bucket_name: str, key: str, payload: bytes = PROBE_CONTENT
) -> VerificationProbe:
    try:
        s3_client.put_object(Bucket=bucket_name, Key=key, Body=payload)
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(
            f"failed to upload object to source bucket {bucket_name}", e
        ) from e
    return VerificationProbe(key=key, payload=payload, uploaded_at=datetime.now(timezone.utc))


def normalize_region(location: Optional[str]) -> str:
    """Map a GetBucketLocation constraint to a region name"""
    if not location:
        return DEFAULT_REGION
    return LEGACY_REGION_ALIASES.get(location, location)


def resolve_region(s3_client, bucket_name: str, fallback: str) -> str:
    try:
        response = s3_client.get_bucket_location(Bucket=bucket_name)
    except PROVIDER_ERRORS as e:
        logger.warning(
            "Could not look up region of %s (%s), assuming %s", bucket_name, e, fallback
        )
        return fallback
    return normalize_region(response.get("LocationConstraint"))


def discover_destinations(s3_client, bucket_name: str) -> List[str]:
    configuration = get_replication_configuration(s3_client, bucket_name)
    if configuration is None:
        raise NoDestinationsError(f"bucket {bucket_name} has no replication configuration")
    names = destination_buckets(configuration)
    if not names:
        raise NoDestinationsError("No destination buckets found in replication rules.")
    return names


def poll_for_object(
    s3_client,
    bucket_name: str,
    key: str,
    policy: PollPolicy = DEFAULT_POLL_POLICY,
    sleep: Callable[[float], None] = time.sleep,
    on_miss: Optional[Callable[[int], None]] = None,
) -> PollResult:
    """
    Wait for key to show up in bucket_name.

    Every attempt first waits policy.interval_seconds, then issues one
    HeadObject. Any provider error counts as "not there yet". Running out of
    attempts is reported as found=False, never raised.
    """
    for attempt in range(1, policy.max_attempts + 1):
        sleep(policy.interval_seconds)
        try:
            s3_client.head_object(Bucket=bucket_name, Key=key)
        except PROVIDER_ERRORS as e:
            logger.debug("Check %d on %s: %s", attempt, bucket_name, error_code(e))
            if on_miss is not None:
                on_miss(attempt)
            continue
        return PollResult(found=True, attempts=attempt)
    return PollResult(found=False, attempts=policy.max_attempts)


def list_keys(s3_client, bucket_name: str) -> List[str]:
    keys: List[str] = []
    try:
        paginator = s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket_name):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(f"failed to list bucket {bucket_name}", e) from e
    return keys


def verify(
    source_client,
    client_for_region: Callable[[str], object],
    source_bucket: str,
    key: str,
    source_region: str = DEFAULT_REGION,
    dest_bucket: Optional[str] = None,
    dest_region: Optional[str] = None,
    policy: PollPolicy = DEFAULT_POLL_POLICY,
    sleep: Callable[[float], None] = time.sleep,
    echo: Callable[[str], None] = print,
    payload: bytes = PROBE_CONTENT,
) -> VerificationReport:
    """
    Upload a probe to source_bucket and check that it reaches every destination.

    Destinations come from the bucket's replication configuration unless
    dest_bucket is given. Timeouts on one destination do not stop the others.
    """
    probe = upload_probe(source_client, source_bucket, key, payload)
    echo(f"Uploaded object {key} to source bucket {source_bucket}")

    if dest_bucket:
        targets: List[Tuple[str, Optional[str]]] = [(dest_bucket, dest_region)]
    else:
        targets = [(name, None) for name in discover_destinations(source_client, source_bucket)]

    report = VerificationReport(source_bucket=source_bucket, probe=probe)
    for name, region in targets:
        echo(f"\nChecking replication to destination bucket: {name}")
        region = region or resolve_region(source_client, name, fallback=source_region)
        echo(f"Using region {region} for bucket {name}")
        echo("Waiting for replication (may take 30-60 seconds)...")

        result = poll_for_object(
            client_for_region(region),
            name,
            key,
            policy=policy,
            sleep=sleep,
            on_miss=lambda attempt: echo(f"Check {attempt}: object not replicated yet"),
        )
        if result.found:
            echo(f"Object {key} replicated successfully to bucket {name}")
        else:
            echo(f"Object {key} did not replicate to bucket {name} within timeout")
        report.destinations.append(
            DestinationReport(
                bucket=name, region=region, found=result.found, attempts=result.attempts
            )
        )

    report.source_keys = list_keys(source_client, source_bucket)
    for destination in report.destinations:
        destination.dest_keys = list_keys(client_for_region(destination.region), destination.bucket)
        destination.source_count = len(report.source_keys)
        destination.dest_count = len(destination.dest_keys)
    return report
