"""
Replication rule reconciliation for a source bucket.

The provider only accepts whole configurations, so every upsert is a
read-modify-write of the full rule list. Rules are matched by destination
bucket, not by ID: one rule per destination, whatever it was called before.

There is no concurrency control on the stored configuration. Two processes
reconciling the same source bucket will race and the last write wins, so
callers must never run more than one setup per source bucket at a time.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from crr_pilot.errors import PROVIDER_ERRORS, TransientProviderError, error_code
from crr_pilot.models import MergeResult, RuleChange
from crr_pilot.resources.bucket import bucket_arn, bucket_name_from_arn

logger = logging.getLogger(__name__)

CONFIGURATION_ABSENT = "ReplicationConfigurationNotFoundError"


def rule_id(dest_bucket: str) -> str:
    return f"replicate-to-{dest_bucket}"


def build_rule(dest_bucket: str, priority: int) -> Dict[str, Any]:
    """A rule replicating every key to dest_bucket, delete markers excluded"""
    return {
        "ID": rule_id(dest_bucket),
        "Status": "Enabled",
        "Priority": priority,
        "Filter": {"Prefix": ""},
        "Destination": {"Bucket": bucket_arn(dest_bucket)},
        "DeleteMarkerReplication": {"Status": "Disabled"},
    }


def rule_destination(rule: Dict[str, Any]) -> Optional[str]:
    return (rule.get("Destination") or {}).get("Bucket")


def max_priority(rules: List[Dict[str, Any]]) -> int:
    # Rules without a priority count as 0
    return max((rule.get("Priority") or 0 for rule in rules), default=0)


def merge_rule(rules: List[Dict[str, Any]], dest_bucket: str) -> MergeResult:
    """
    Merge the rule for dest_bucket into a copy of rules.

    The first rule for the same destination is replaced at its position and
    keeps its priority; later rules for that destination are dropped.
    Otherwise a new rule is appended with the next free priority. Other
    rules are returned untouched.
    """
    target = bucket_arn(dest_bucket)
    next_priority = max_priority(rules) + 1
    merged: List[Dict[str, Any]] = []
    rule: Optional[Dict[str, Any]] = None

    for existing in rules:
        if rule_destination(existing) != target:
            merged.append(copy.deepcopy(existing))
            continue
        if rule is not None:
            logger.info("Dropping duplicate rule %s for %s", existing.get("ID"), dest_bucket)
            continue
        priority = existing.get("Priority")
        if priority is None:
            priority = next_priority
        rule = build_rule(dest_bucket, priority)
        merged.append(rule)

    if rule is not None:
        return MergeResult(RuleChange.UPDATED, rule, merged)

    rule = build_rule(dest_bucket, next_priority)
    merged.append(rule)
    return MergeResult(RuleChange.ADDED, rule, merged)


def get_replication_configuration(s3_client, bucket_name: str) -> Optional[Dict[str, Any]]:
    """Return the bucket's replication configuration, or None if it has none"""
    try:
        response = s3_client.get_bucket_replication(Bucket=bucket_name)
    except ClientError as e:
        if error_code(e) == CONFIGURATION_ABSENT:
            logger.info("Bucket %s has no replication configuration yet", bucket_name)
            return None
        raise TransientProviderError.wrap(
            f"GetBucketReplication {bucket_name} failed", e
        ) from e
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(
            f"GetBucketReplication {bucket_name} failed", e
        ) from e
    return response.get("ReplicationConfiguration")


def upsert_rule(s3_client, source_bucket: str, dest_bucket: str, role_arn: str) -> MergeResult:
    """Install or refresh the rule replicating source_bucket into dest_bucket"""
    current = get_replication_configuration(s3_client, source_bucket) or {}
    result = merge_rule(current.get("Rules") or [], dest_bucket)
    rules = result.rules

    logger.info(
        "Rule %s %s with priority %d (%d rule(s) total)",
        result.rule["ID"],
        result.change.value,
        result.rule["Priority"],
        len(rules),
    )

    try:
        s3_client.put_bucket_replication(
            Bucket=source_bucket,
            ReplicationConfiguration={"Role": role_arn, "Rules": rules},
        )
    except PROVIDER_ERRORS as e:
        raise TransientProviderError.wrap(
            f"PutBucketReplication {source_bucket} failed", e
        ) from e
    return result


def destination_buckets(configuration: Optional[Dict[str, Any]]) -> List[str]:
    """Distinct destination bucket names across all rules, in rule order"""
    names: List[str] = []
    for rule in (configuration or {}).get("Rules") or []:
        name = bucket_name_from_arn(rule_destination(rule) or "")
        if name and name not in names:
            names.append(name)
    return names
