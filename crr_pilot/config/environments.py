from dataclasses import dataclass, field
from typing import Optional

# us-east-1 is the one region that must not be sent as a LocationConstraint
DEFAULT_REGION = "us-east-1"
DEFAULT_DEST_REGION = "us-west-2"
DEFAULT_ROLE_NAME = "s3-replication-role-example"
DEFAULT_PROBE_KEY = "replication-test-ss.txt"

PROBE_CONTENT = b"Hello extended replication test from crr-pilot. Hello to CRR! Bye."


@dataclass
class PollPolicy:
    max_attempts: int = 12
    interval_seconds: float = 10

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")


@dataclass
class PropagationPolicy:
    max_attempts: int = 10
    interval_seconds: float = 2
    settle_seconds: float = 5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval_seconds < 0 or self.settle_seconds < 0:
            raise ValueError("interval_seconds and settle_seconds must not be negative")


@dataclass
class BucketWaitPolicy:
    delay_seconds: int = 5
    max_attempts: int = 20

    def waiter_config(self) -> dict:
        return {"Delay": self.delay_seconds, "MaxAttempts": self.max_attempts}


@dataclass
class SetupConfig:
    source_bucket: str
    dest_bucket: str
    source_region: str = DEFAULT_REGION
    dest_region: str = DEFAULT_DEST_REGION
    role_name: str = DEFAULT_ROLE_NAME
    profile: Optional[str] = None
    bucket_wait: BucketWaitPolicy = field(default_factory=BucketWaitPolicy)
    propagation: PropagationPolicy = field(default_factory=PropagationPolicy)

    def __post_init__(self):
        if not self.source_bucket or not self.dest_bucket:
            raise ValueError("Both source bucket and destination bucket must be provided.")


@dataclass
class VerifyConfig:
    source_bucket: str
    source_region: str = DEFAULT_REGION
    dest_bucket: Optional[str] = None
    dest_region: Optional[str] = None
    profile: Optional[str] = None
    key: str = DEFAULT_PROBE_KEY
    poll: PollPolicy = field(default_factory=PollPolicy)

    def __post_init__(self):
        if not self.source_bucket:
            raise ValueError("Source bucket must be provided.")


DEFAULT_POLL_POLICY = PollPolicy()
DEFAULT_PROPAGATION_POLICY = PropagationPolicy()
DEFAULT_BUCKET_WAIT = BucketWaitPolicy()
