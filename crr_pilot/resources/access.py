"""
Replication role provisioning.

The role trusts only the S3 service. Each source/destination pair gets its own
inline policy under a deterministic name, so repeated runs overwrite it.
"""

import json
import logging
import time
from typing import Any, Callable, Dict

from botocore.exceptions import BotoCoreError, ClientError

from crr_pilot.config.environments import DEFAULT_PROPAGATION_POLICY, PropagationPolicy
from crr_pilot.errors import PROVIDER_ERRORS, PropagationTimeout, TransientProviderError, error_code
from crr_pilot.models import Ensured, Outcome
from crr_pilot.resources.bucket import bucket_arn

logger = logging.getLogger(__name__)

S3_SERVICE_PRINCIPAL = "s3.amazonaws.com"

SOURCE_ACTIONS = [
    "s3:GetObjectVersion",
    "s3:GetObjectVersionAcl",
    "s3:GetObjectVersionTagging",
    "s3:GetObjectVersionForReplication",
    "s3:ListBucket",
    "s3:GetReplicationConfiguration",
]

DESTINATION_ACTIONS = [
    "s3:ReplicateObject",
    "s3:ReplicateDelete",
    "s3:ReplicateTags",
    "s3:PutObjectAcl",
    "s3:PutObjectVersionAcl",
    "s3:PutObjectVersionTagging",
    "s3:PutObject",
]


def trust_policy() -> Dict[str, Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": S3_SERVICE_PRINCIPAL},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def replication_policy(source_bucket: str, dest_bucket: str) -> Dict[str, Any]:
    """Permissions to read source object versions and replicate into the destination"""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Action": list(SOURCE_ACTIONS),
                "Resource": [bucket_arn(source_bucket), f"{bucket_arn(source_bucket)}/*"],
            },
            {
                "Effect": "Allow",
                "Action": list(DESTINATION_ACTIONS),
                "Resource": [bucket_arn(dest_bucket), f"{bucket_arn(dest_bucket)}/*"],
            },
        ],
    }


def policy_name(role_name: str, source_bucket: str, dest_bucket: str) -> str:
    return f"{role_name}-replication-{source_bucket}-to-{dest_bucket}"


def ensure_role(iam_client, role_name: str, trust: Dict[str, Any]) -> Ensured:
    """Create the role, or adopt the existing one of the same name"""
    try:
        response = iam_client.create_role(
            RoleName=role_name,
            AssumeRolePolicyDocument=json.dumps(trust),
            Description="Role for S3 cross-region replication",
        )
        logger.info("Created role %s", role_name)
        return Ensured(Outcome.CREATED, response["Role"]["Arn"])
    except ClientError as e:
        if error_code(e) != "EntityAlreadyExists":
            raise TransientProviderError.wrap(f"CreateRole {role_name} failed", e) from e
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(f"CreateRole {role_name} failed", e) from e

    try:
        response = iam_client.get_role(RoleName=role_name)
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(
            f"role {role_name} exists but failed to get role", e
        ) from e
    logger.info("Adopted existing role %s", role_name)
    return Ensured(Outcome.ADOPTED, response["Role"]["Arn"])


def attach_policy(iam_client, role_name: str, name: str, document: Dict[str, Any]) -> None:
    """Put the inline policy; a full overwrite under a fixed name"""
    try:
        iam_client.put_role_policy(
            RoleName=role_name, PolicyName=name, PolicyDocument=json.dumps(document)
        )
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(f"failed to put role policy {name}", e) from e
    logger.info("Attached inline policy %s to %s", name, role_name)


def wait_for_role_usable(
    iam_client,
    role_name: str,
    name: str,
    policy: PropagationPolicy = DEFAULT_PROPAGATION_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Wait until the inline policy is readable back from IAM, then settle.

    IAM is eventually consistent: a read that succeeds here does not mean
    S3 can already assume the role, hence the extra settle delay.
    Returns the number of reads it took; raises PropagationTimeout.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            iam_client.get_role_policy(RoleName=role_name, PolicyName=name)
        except ClientError as e:
            if error_code(e) != "NoSuchEntity":
                raise TransientProviderError.wrap(f"GetRolePolicy {name} failed", e) from e
            logger.debug("Policy %s not visible yet (attempt %d)", name, attempt)
            if attempt < policy.max_attempts:
                sleep(policy.interval_seconds)
            continue
        except BotoCoreError as e:
            raise TransientProviderError.wrap(f"GetRolePolicy {name} failed", e) from e
        sleep(policy.settle_seconds)
        return attempt

    raise PropagationTimeout(
        f"policy {name} on role {role_name} not visible after {policy.max_attempts} attempts"
    )


def provision_role(
    iam_client,
    role_name: str,
    source_bucket: str,
    dest_bucket: str,
    policy: PropagationPolicy = DEFAULT_PROPAGATION_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> Ensured:
    """Ensure the role, attach the pair policy and wait for it to be usable"""
    role = ensure_role(iam_client, role_name, trust_policy())
    name = policy_name(role_name, source_bucket, dest_bucket)
    attach_policy(iam_client, role_name, name, replication_policy(source_bucket, dest_bucket))
    wait_for_role_usable(iam_client, role_name, name, policy=policy, sleep=sleep)
    return role
