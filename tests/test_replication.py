import copy

import pytest
from botocore.stub import Stubber

from crr_pilot.errors import TransientProviderError
from crr_pilot.models import RuleChange
from crr_pilot.resources.replication import (
    build_rule,
    destination_buckets,
    get_replication_configuration,
    max_priority,
    merge_rule,
    upsert_rule,
)

ROLE_ARN = "arn:aws:iam::123456789012:role/role-x"


def custom_rule(rule_id, dest, priority, prefix="docs/"):
    """A rule created by some other tool, with fields this package never writes"""
    return {
        "ID": rule_id,
        "Status": "Enabled",
        "Priority": priority,
        "Filter": {"Prefix": prefix},
        "Destination": {"Bucket": f"arn:aws:s3:::{dest}", "StorageClass": "STANDARD_IA"},
        "DeleteMarkerReplication": {"Status": "Enabled"},
    }


def replication_rules(s3, bucket):
    return s3.get_bucket_replication(Bucket=bucket)["ReplicationConfiguration"]["Rules"]


class TestMergeRule:
    """Test merging a destination rule into an existing rule list"""

    def test_empty_configuration_bootstrap(self):
        """Test merging into no rules yields a single rule at priority 1"""
        result = merge_rule([], "dst")

        assert result.change is RuleChange.ADDED
        assert result.rules == [build_rule("dst", 1)]

    def test_rule_shape(self):
        """Test the generated rule replicates everything without delete markers"""
        rule = build_rule("dst", 1)

        assert rule == {
            "ID": "replicate-to-dst",
            "Status": "Enabled",
            "Priority": 1,
            "Filter": {"Prefix": ""},
            "Destination": {"Bucket": "arn:aws:s3:::dst"},
            "DeleteMarkerReplication": {"Status": "Disabled"},
        }

    def test_update_in_place_keeps_priority(self):
        """Test an existing destination is replaced at its position with its priority"""
        rule_a = custom_rule("rule-a", "a", 1)
        rules = [rule_a, custom_rule("rule-b", "b", 2)]

        result = merge_rule(rules, "b")

        assert result.change is RuleChange.UPDATED
        assert result.rules[0] == rule_a
        assert result.rules[1] == build_rule("b", 2)
        assert len(result.rules) == 2

    def test_new_destination_gets_next_priority(self):
        """Test a new destination is appended after the highest priority"""
        rules = [custom_rule("rule-a", "a", 1), custom_rule("rule-b", "b", 2)]

        result = merge_rule(rules, "c")

        assert result.change is RuleChange.ADDED
        assert result.rules[:2] == rules
        assert result.rules[2] == build_rule("c", 3)

    def test_priority_follows_max_not_count(self):
        """Test gaps in priorities are respected"""
        rules = [custom_rule("rule-a", "a", 7), custom_rule("rule-b", "b", 2)]

        assert merge_rule(rules, "c").rule["Priority"] == 8

    def test_missing_priority_counts_as_zero(self):
        """Test rules without priority count as 0 and updated ones get max + 1"""
        legacy = {
            "ID": "old",
            "Status": "Enabled",
            "Prefix": "",
            "Destination": {"Bucket": "arn:aws:s3:::b"},
        }

        assert max_priority([legacy]) == 0
        result = merge_rule([custom_rule("rule-a", "a", 3), legacy], "b")

        assert result.change is RuleChange.UPDATED
        assert result.rules[1]["Priority"] == 4

    def test_duplicate_destinations_are_collapsed(self):
        """Test later rules for the same destination are dropped, the first keeps its slot"""
        rules = [
            custom_rule("r1", "b", 1),
            custom_rule("r2", "a", 2, prefix="images/"),
            custom_rule("r3", "b", 3, prefix="archive/"),
        ]

        result = merge_rule(rules, "b")

        assert result.change is RuleChange.UPDATED
        assert result.rules == [build_rule("b", 1), rules[1]]
        destinations = [rule["Destination"]["Bucket"] for rule in result.rules]
        assert len(set(destinations)) == len(destinations)

    def test_input_is_not_mutated(self):
        """Test merging works on a copy of the rules"""
        rules = [custom_rule("rule-b", "b", 2)]
        snapshot = copy.deepcopy(rules)

        merge_rule(rules, "b")

        assert rules == snapshot

    def test_rule_id_is_replaced_by_derived_id(self):
        """Test the merged rule id comes from the destination, not the old rule"""
        result = merge_rule([custom_rule("hand-made", "b", 5)], "b")

        assert result.rule["ID"] == "replicate-to-b"

    def test_merge_is_idempotent(self):
        """Test merging the same destination twice changes nothing"""
        once = merge_rule([custom_rule("rule-a", "a", 1)], "b").rules
        twice = merge_rule(once, "b").rules

        assert once == twice
        priorities = [rule["Priority"] for rule in twice]
        assert len(set(priorities)) == len(priorities)


class TestDestinationBuckets:
    """Test destination discovery from a configuration"""

    def test_distinct_destinations_in_order(self):
        """Test every destination is listed once, in rule order"""
        config = {
            "Role": ROLE_ARN,
            "Rules": [
                custom_rule("r1", "b", 1),
                custom_rule("r2", "a", 2, prefix="images/"),
                custom_rule("r3", "b", 3, prefix="archive/"),
            ],
        }

        assert destination_buckets(config) == ["b", "a"]

    def test_no_configuration(self):
        """Test an absent configuration has no destinations"""
        assert destination_buckets(None) == []
        assert destination_buckets({"Role": ROLE_ARN, "Rules": [{"ID": "x"}]}) == []


class TestUpsertRule:
    """Test the reconciler against a mocked S3"""

    def test_first_time_setup(self, s3_source, source_bucket):
        """Test a bucket without replication gets one rule at priority 1"""
        result = upsert_rule(s3_source, source_bucket, "dst", ROLE_ARN)

        assert result.change is RuleChange.ADDED
        config = s3_source.get_bucket_replication(Bucket=source_bucket)["ReplicationConfiguration"]
        assert config["Role"] == ROLE_ARN
        assert len(config["Rules"]) == 1
        rule = config["Rules"][0]
        assert rule["ID"] == "replicate-to-dst"
        assert rule["Priority"] == 1
        assert rule["Destination"]["Bucket"] == "arn:aws:s3:::dst"

    def test_upsert_preserves_other_rules(self, s3_source, source_bucket):
        """Test updating one destination leaves the other rule untouched"""
        s3_source.put_bucket_replication(
            Bucket=source_bucket,
            ReplicationConfiguration={
                "Role": ROLE_ARN,
                "Rules": [
                    build_rule("a", 1) | {"ID": "rule-a"},
                    build_rule("b", 2) | {"ID": "rule-b"},
                ],
            },
        )

        result = upsert_rule(s3_source, source_bucket, "b", ROLE_ARN)

        assert result.change is RuleChange.UPDATED
        rules = replication_rules(s3_source, source_bucket)
        assert [(r["ID"], r["Priority"]) for r in rules] == [("rule-a", 1), ("replicate-to-b", 2)]

    def test_upsert_twice_is_stable(self, s3_source, source_bucket):
        """Test repeated upserts neither duplicate rules nor move priorities"""
        upsert_rule(s3_source, source_bucket, "dst", ROLE_ARN)
        upsert_rule(s3_source, source_bucket, "other", ROLE_ARN)
        upsert_rule(s3_source, source_bucket, "dst", ROLE_ARN)

        rules = replication_rules(s3_source, source_bucket)
        assert [(r["ID"], r["Priority"]) for r in rules] == [
            ("replicate-to-dst", 1),
            ("replicate-to-other", 2),
        ]

    def test_absent_configuration_is_none(self, s3_source, source_bucket):
        """Test a missing configuration is reported as None"""
        assert get_replication_configuration(s3_source, source_bucket) is None

    def test_fetch_failure_is_fatal(self, s3_source):
        """Test errors other than a missing configuration are raised"""
        with Stubber(s3_source) as stubber:
            stubber.add_client_error(
                "get_bucket_replication", service_error_code="AccessDenied", http_status_code=403
            )
            with pytest.raises(TransientProviderError) as exc_info:
                upsert_rule(s3_source, "src", "dst", ROLE_ARN)

        assert exc_info.value.code == "AccessDenied"

    def test_write_failure_is_fatal(self, s3_source):
        """Test a rejected write is surfaced to the caller"""
        with Stubber(s3_source) as stubber:
            stubber.add_client_error(
                "get_bucket_replication",
                service_error_code="ReplicationConfigurationNotFoundError",
                http_status_code=404,
            )
            stubber.add_client_error(
                "put_bucket_replication", service_error_code="InvalidRequest", http_status_code=400
            )
            with pytest.raises(TransientProviderError):
                upsert_rule(s3_source, "src", "dst", ROLE_ARN)
