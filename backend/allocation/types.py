from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union


Timestamp = Union[int, float, datetime]


class DecisionStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    WAITLISTED = "WAITLISTED"
    REJECTED = "REJECTED"


class RejectionReason(str, Enum):
    PREREQUISITE_NOT_MET = "prerequisite_not_met"
    SCHEDULE_CONFLICT = "schedule_conflict"
    CREDIT_LIMIT_EXCEEDED = "credit_limit_exceeded"
    UNKNOWN_COURSE = "unknown_course"
    NO_LONGER_ELIGIBLE = "no_longer_eligible"


def timestamp_key(value: Any) -> float | None:
    """Map a submission timestamp onto a comparable float.

    Numbers are taken as-is, datetimes as POSIX seconds (naive values are read
    as UTC). Returns None for anything that cannot be ordered.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, (int, float)):
        key = float(value)
        if math.isnan(key) or math.isinf(key):
            return None
        return key
    return None


@dataclass(frozen=True)
class StudentRequest:
    student_id: str
    preferences: tuple[str, ...]
    submitted_at: Timestamp
    committed_credits: float = 0
    completed_courses: frozenset[str] = frozenset()
    version: int = 0

    def __post_init__(self) -> None:
        # Accept lists/sets from callers; store immutable copies.
        object.__setattr__(self, "preferences", tuple(self.preferences))
        object.__setattr__(self, "completed_courses", frozenset(self.completed_courses))


@dataclass(frozen=True, order=True)
class WaitlistEntry:
    timestamp: float
    sequence: int
    student_id: str = field(compare=False)


@dataclass
class CourseSlot:
    course_id: str
    capacity: int
    prerequisites: frozenset[str] = frozenset()
    credits: float = 1
    assigned: set[str] = field(default_factory=set)
    waitlist: list[WaitlistEntry] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.prerequisites = frozenset(self.prerequisites)
        self.assigned = set(self.assigned)
        self.waitlist = list(self.waitlist)

    @property
    def free_seats(self) -> int:
        return max(0, self.capacity - len(self.assigned))

    def is_waitlisted(self, student_id: str) -> bool:
        return any(e.student_id == student_id for e in self.waitlist)

    def waitlist_position(self, student_id: str) -> int | None:
        for i, entry in enumerate(self.waitlist, start=1):
            if entry.student_id == student_id:
                return i
        return None

    def waitlisted_ids(self) -> list[str]:
        return [e.student_id for e in self.waitlist]

    def copy(self) -> CourseSlot:
        return copy.deepcopy(self)


@dataclass(frozen=True)
class AllocationDecision:
    student_id: str
    course_id: str
    status: DecisionStatus
    reason: RejectionReason | None = None
    rank: int | None = None
    sequence: int | None = None
    waitlist_position: int | None = None
    detail: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "student_id": self.student_id,
            "course_id": self.course_id,
            "status": self.status.value,
            "reason": self.reason.value if self.reason is not None else None,
            "rank": self.rank,
            "sequence": self.sequence,
            "waitlist_position": self.waitlist_position,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class PromotionEvent:
    course_id: str
    freed_count: int


@dataclass(frozen=True)
class ValidationIssue:
    issue_type: str
    message: str
    severity: str = "ERROR"
    student_id: str | None = None
    course_id: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class AllocationConfig:
    """Immutable per-run configuration.

    Enrollment window bounds, when given, must be the same kind of value as
    the request timestamps (numbers or datetimes).
    """

    academic_year: str = ""
    term: str = ""
    enrollment_opens_at: Timestamp | None = None
    enrollment_closes_at: Timestamp | None = None
    multi_course: bool = True
    abort_invalid_ratio: float = 0.5

    def __post_init__(self) -> None:
        if not (0 < self.abort_invalid_ratio <= 1):
            raise ValueError("abort_invalid_ratio must be in (0, 1]")


@dataclass(frozen=True)
class AllocationResult:
    run_id: str
    config: AllocationConfig
    decisions: tuple[AllocationDecision, ...]
    issues: tuple[ValidationIssue, ...]
    courses: dict[str, CourseSlot]
    status: str = "COMMITTED"

    def decisions_for(self, student_id: str) -> list[AllocationDecision]:
        return [d for d in self.decisions if d.student_id == student_id]

    def course_snapshot(self, course_id: str) -> CourseSlot | None:
        slot = self.courses.get(course_id)
        return slot.copy() if slot is not None else None

    def summary(self) -> dict[str, int]:
        counts = {s.value: 0 for s in DecisionStatus}
        for d in self.decisions:
            counts[d.status.value] += 1
        counts["issues"] = sum(1 for i in self.issues if i.severity == "ERROR")
        return counts


@dataclass(frozen=True)
class PromotionResult:
    event: PromotionEvent
    decisions: tuple[AllocationDecision, ...]
    issues: tuple[ValidationIssue, ...] = ()
    seats_filled: int = 0
    event_id: str = ""
