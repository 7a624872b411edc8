import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from crr_pilot.config.environments import DEFAULT_BUCKET_WAIT, DEFAULT_REGION, BucketWaitPolicy
from crr_pilot.errors import PROVIDER_ERRORS, OwnershipConflict, TransientProviderError, error_code
from crr_pilot.models import Ensured, Outcome

logger = logging.getLogger(__name__)

S3_ARN_PREFIX = "arn:aws:s3:::"


def bucket_arn(name: str) -> str:
    return f"{S3_ARN_PREFIX}{name}"


def bucket_name_from_arn(arn: str) -> Optional[str]:
    """Extract the bucket name from arn:aws:s3:::name, None for anything else"""
    if not arn or not arn.startswith(S3_ARN_PREFIX):
        return None
    name = arn[len(S3_ARN_PREFIX) :]
    return name or None


def ensure_bucket(
    s3_client, bucket_name: str, region: str, wait: BucketWaitPolicy = DEFAULT_BUCKET_WAIT
) -> Ensured:
    """
    Create the bucket unless it already exists and belongs to the caller.

    Raises OwnershipConflict when another account owns the name.
    """
    try:
        s3_client.head_bucket(Bucket=bucket_name)
        logger.info("Bucket %s already exists", bucket_name)
        return Ensured(Outcome.ADOPTED, bucket_name)
    except ClientError as e:
        # Not found or forbidden; creation settles which one it was
        logger.debug("head_bucket on %s failed with %s", bucket_name, error_code(e))
    except BotoCoreError as e:
        raise TransientProviderError.wrap(f"HeadBucket {bucket_name} failed", e) from e

    create_args = {"Bucket": bucket_name}
    # us-east-1 rejects an explicit LocationConstraint
    if region != DEFAULT_REGION:
        create_args["CreateBucketConfiguration"] = {"LocationConstraint": region}

    try:
        s3_client.create_bucket(**create_args)
    except ClientError as e:
        code = error_code(e)
        if code == "BucketAlreadyOwnedByYou":
            logger.info("Bucket %s is already owned by this account", bucket_name)
            return Ensured(Outcome.ADOPTED, bucket_name)
        if code == "BucketAlreadyExists":
            raise OwnershipConflict(
                f"bucket {bucket_name} already exists and is owned by another account"
            ) from e
        raise TransientProviderError.wrap(f"CreateBucket {bucket_name} failed", e) from e
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(f"CreateBucket {bucket_name} failed", e) from e

    try:
        s3_client.get_waiter("bucket_exists").wait(
            Bucket=bucket_name, WaiterConfig=wait.waiter_config()
        )
    except WaiterError as e:
        raise TransientProviderError(
            f"bucket {bucket_name} creation started but wait failed: {e}"
        ) from e
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(
            f"bucket {bucket_name} creation started but wait failed", e
        ) from e

    logger.info("Created bucket %s in %s", bucket_name, region)
    return Ensured(Outcome.CREATED, bucket_name)


def enable_versioning(s3_client, bucket_name: str) -> None:
    """Enable versioning; setting Enabled twice is a no-op at the provider"""
    try:
        s3_client.put_bucket_versioning(
            Bucket=bucket_name, VersioningConfiguration={"Status": "Enabled"}
        )
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(
            f"enabling versioning on {bucket_name} failed", e
        ) from e
    logger.info("Versioning enabled on %s", bucket_name)
