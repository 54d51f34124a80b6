from __future__ import annotations

from typing import Iterable

from allocation.policy import AllocationPolicy, exclusive_groups, fixed_credit_limit
from allocation.types import (
    AllocationConfig,
    AllocationDecision,
    CourseSlot,
    StudentRequest,
    ValidationIssue,
    WaitlistEntry,
)
from core.config import Settings, settings as default_settings
from schemas.allocation import (
    AllocationConfigIn,
    AllocationDecisionOut,
    CourseSlotIn,
    CourseSlotOut,
    PolicyIn,
    StudentRequestIn,
    ValidationIssueOut,
    WaitlistEntryOut,
)


def build_courses(courses: Iterable[CourseSlotIn]) -> list[CourseSlot]:
    return [
        CourseSlot(
            course_id=c.course_id,
            capacity=c.capacity,
            prerequisites=frozenset(c.prerequisites),
            credits=c.credits,
            assigned=set(c.assigned),
            waitlist=[
                WaitlistEntry(timestamp=w.timestamp, sequence=w.sequence, student_id=w.student_id)
                for w in c.waitlist
            ],
        )
        for c in courses
    ]


def build_requests(requests: Iterable[StudentRequestIn]) -> list[StudentRequest]:
    return [
        StudentRequest(
            student_id=r.student_id,
            preferences=tuple(r.preferences),
            submitted_at=r.submitted_at,
            committed_credits=r.committed_credits,
            completed_courses=frozenset(r.completed_courses),
            version=r.version,
        )
        for r in requests
    ]


def build_policy(policy: PolicyIn, *, settings: Settings = default_settings) -> AllocationPolicy:
    default_limit = policy.default_credit_limit
    if default_limit is None:
        default_limit = settings.default_credit_limit
    return AllocationPolicy(
        conflicts=exclusive_groups(policy.exclusive_groups),
        credit_limit=fixed_credit_limit(default_limit, policy.credit_limits),
    )


def build_config(config: AllocationConfigIn, *, settings: Settings = default_settings) -> AllocationConfig:
    return AllocationConfig(
        academic_year=config.academic_year if config.academic_year is not None else settings.academic_year,
        term=config.term if config.term is not None else settings.term,
        enrollment_opens_at=config.enrollment_opens_at,
        enrollment_closes_at=config.enrollment_closes_at,
        multi_course=config.multi_course,
        abort_invalid_ratio=(
            config.abort_invalid_ratio if config.abort_invalid_ratio is not None else settings.abort_invalid_ratio
        ),
    )


def decision_out(decision: AllocationDecision) -> AllocationDecisionOut:
    return AllocationDecisionOut(**decision.as_dict())


def issue_out(issue: ValidationIssue) -> ValidationIssueOut:
    return ValidationIssueOut(
        severity=issue.severity,
        issue_type=issue.issue_type,
        message=issue.message,
        student_id=issue.student_id,
        course_id=issue.course_id,
        details=issue.metadata or {},
    )


def course_out(slot: CourseSlot) -> CourseSlotOut:
    return CourseSlotOut(
        course_id=slot.course_id,
        capacity=slot.capacity,
        credits=slot.credits,
        prerequisites=sorted(slot.prerequisites),
        assigned=sorted(slot.assigned),
        waitlist=[
            WaitlistEntryOut(student_id=e.student_id, timestamp=e.timestamp, sequence=e.sequence)
            for e in slot.waitlist
        ],
    )
