from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Numbers are kept as-is (e.g. sequence numbers from an upstream queue);
# ISO strings parse as datetimes. Null is passed through so the engine can
# report it as an invalid timestamp instead of rejecting the whole body.
TimestampIn = float | datetime | None


class WaitlistEntryIn(BaseModel):
    student_id: str = Field(min_length=1)
    timestamp: float
    sequence: int = Field(ge=0)


class CourseSlotIn(BaseModel):
    course_id: str = Field(min_length=1)
    capacity: int = Field(ge=1)
    credits: float = Field(default=1, ge=0)
    prerequisites: list[str] = Field(default_factory=list)
    assigned: list[str] = Field(default_factory=list)
    waitlist: list[WaitlistEntryIn] = Field(default_factory=list)


class StudentRequestIn(BaseModel):
    student_id: str
    preferences: list[str] = Field(default_factory=list)
    submitted_at: TimestampIn = None
    committed_credits: float = Field(default=0, ge=0)
    completed_courses: list[str] = Field(default_factory=list)
    version: int = 0


class PolicyIn(BaseModel):
    """Policy inputs turned into engine predicates.

    `exclusive_groups`: groups of mutually-exclusive courses (no student may
    hold two courses of one group). Credit limits fall back to the service
    default when neither a per-student nor a request default is given.
    """

    exclusive_groups: list[list[str]] = Field(default_factory=list)
    default_credit_limit: float | None = Field(default=None, ge=0)
    credit_limits: dict[str, float] = Field(default_factory=dict)


class AllocationConfigIn(BaseModel):
    academic_year: str | None = None
    term: str | None = None
    enrollment_opens_at: TimestampIn = None
    enrollment_closes_at: TimestampIn = None
    multi_course: bool = True
    abort_invalid_ratio: float | None = Field(default=None, gt=0, le=1)


class RunAllocationRequest(BaseModel):
    config: AllocationConfigIn = Field(default_factory=AllocationConfigIn)
    courses: list[CourseSlotIn] = Field(default_factory=list)
    requests: list[StudentRequestIn] = Field(default_factory=list)
    policy: PolicyIn = Field(default_factory=PolicyIn)


class PromotionEventIn(BaseModel):
    course_id: str = Field(min_length=1)
    freed_count: int


class WithdrawalIn(BaseModel):
    student_id: str = Field(min_length=1)
    course_id: str = Field(min_length=1)


class CapacityChangeIn(BaseModel):
    course_id: str = Field(min_length=1)
    capacity: int = Field(ge=1)


class PromotionRequest(BaseModel):
    """Promotion against a course snapshot.

    Exactly one trigger must be given: a raw event, a withdrawal or a
    capacity change (the latter two are applied first, then promoted).
    """

    courses: list[CourseSlotIn] = Field(default_factory=list)
    requests: list[StudentRequestIn] = Field(default_factory=list)
    policy: PolicyIn = Field(default_factory=PolicyIn)
    event: PromotionEventIn | None = None
    withdrawal: WithdrawalIn | None = None
    capacity_change: CapacityChangeIn | None = None

    @model_validator(mode="after")
    def _exactly_one_trigger(self) -> PromotionRequest:
        given = [t for t in (self.event, self.withdrawal, self.capacity_change) if t is not None]
        if len(given) != 1:
            raise ValueError("Provide exactly one of 'event', 'withdrawal' or 'capacity_change'.")
        return self


class AllocationDecisionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: str
    course_id: str
    status: Literal["ASSIGNED", "WAITLISTED", "REJECTED"]
    reason: str | None = None
    rank: int | None = None
    sequence: int | None = None
    waitlist_position: int | None = None
    detail: str | None = None


class ValidationIssueOut(BaseModel):
    severity: Literal["INFO", "WARN", "ERROR"] = "ERROR"
    issue_type: str
    message: str
    student_id: str | None = None
    course_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class WaitlistEntryOut(BaseModel):
    student_id: str
    timestamp: float
    sequence: int


class CourseSlotOut(BaseModel):
    course_id: str
    capacity: int
    credits: float
    prerequisites: list[str] = Field(default_factory=list)
    assigned: list[str] = Field(default_factory=list)
    waitlist: list[WaitlistEntryOut] = Field(default_factory=list)


class RunAllocationResponse(BaseModel):
    run_id: uuid.UUID
    engine_run_id: str
    status: Literal["COMMITTED"]
    summary: dict[str, int] = Field(default_factory=dict)
    decisions: list[AllocationDecisionOut] = Field(default_factory=list)
    issues: list[ValidationIssueOut] = Field(default_factory=list)
    courses: list[CourseSlotOut] = Field(default_factory=list)


class PromotionResponse(BaseModel):
    run_id: uuid.UUID
    engine_run_id: str
    course_id: str
    freed_count: int
    seats_filled: int = 0
    decisions: list[AllocationDecisionOut] = Field(default_factory=list)
    issues: list[ValidationIssueOut] = Field(default_factory=list)
    courses: list[CourseSlotOut] = Field(default_factory=list)


class RunSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    engine_run_id: str | None = None
    kind: str
    status: str
    academic_year: str = ""
    term: str = ""
    requests_total: int = 0
    created_at: datetime
    parameters: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None


class RunDetail(RunSummary):
    decisions_total: int = 0
    issues: list[ValidationIssueOut] = Field(default_factory=list)


class ListRunsResponse(BaseModel):
    runs: list[RunSummary] = Field(default_factory=list)


class ListRunDecisionsResponse(BaseModel):
    run_id: uuid.UUID
    decisions: list[AllocationDecisionOut] = Field(default_factory=list)
