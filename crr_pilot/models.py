from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Outcome(Enum):
    CREATED = "created"
    ADOPTED = "adopted"


@dataclass(frozen=True)
class Ensured:
    """
    Result of a create-or-adopt call.
    Conflicts are raised as OwnershipConflict, never returned.
    """

    outcome: Outcome
    handle: str

    @property
    def created(self) -> bool:
        return self.outcome is Outcome.CREATED


class RuleChange(Enum):
    ADDED = "added"
    UPDATED = "updated"


@dataclass
class MergeResult:
    change: RuleChange
    rule: dict
    rules: List[dict]


@dataclass
class SetupResult:
    bucket: Ensured
    role: Ensured
    role_arn: str
    rule: MergeResult


@dataclass(frozen=True)
class VerificationProbe:
    key: str
    payload: bytes
    uploaded_at: datetime


@dataclass
class PollResult:
    found: bool
    attempts: int


@dataclass
class DestinationReport:
    bucket: str
    region: str
    found: bool
    attempts: int
    source_count: int = 0
    dest_count: int = 0
    dest_keys: List[str] = field(default_factory=list)

    @property
    def caught_up(self) -> bool:
        # Count parity only; it does not prove the same keys replicated
        return self.dest_count >= self.source_count


@dataclass
class VerificationReport:
    source_bucket: str
    probe: VerificationProbe
    source_keys: List[str] = field(default_factory=list)
    destinations: List[DestinationReport] = field(default_factory=list)

    def destination(self, bucket: str) -> Optional[DestinationReport]:
        for report in self.destinations:
            if report.bucket == bucket:
                return report
        return None

    @property
    def all_found(self) -> bool:
        return all(report.found for report in self.destinations)
