from __future__ import annotations

from allocation.policy import AllocationPolicy
from allocation.state import CourseState
from allocation.types import CourseSlot, RejectionReason, StudentRequest


def check_eligibility(
    state: CourseState,
    request: StudentRequest,
    slot: CourseSlot,
    policy: AllocationPolicy,
) -> tuple[RejectionReason | None, str | None]:
    """Run the prerequisite, schedule-conflict and credit-limit checks in that order.

    Evaluated against the student's current assignments in `state`, so the
    same checks serve both a full pass and a later promotion.
    Returns (None, None) when the student may take a seat.
    """

    student_id = request.student_id
    held = state.assigned_courses(student_id)
    held.discard(slot.course_id)

    satisfied = set(request.completed_courses) | held
    if slot.prerequisites and not policy.prerequisites_met(slot.prerequisites, frozenset(satisfied)):
        missing = sorted(slot.prerequisites - satisfied)
        return RejectionReason.PREREQUISITE_NOT_MET, f"missing prerequisites: {', '.join(missing) or 'policy'}"

    for other in sorted(held):
        if policy.conflicts(slot.course_id, other):
            return RejectionReason.SCHEDULE_CONFLICT, f"conflicts with {other}"

    limit = policy.credit_limit(student_id)
    load = request.committed_credits + state.credit_load(student_id, exclude=slot.course_id)
    if load + slot.credits > limit:
        return RejectionReason.CREDIT_LIMIT_EXCEEDED, f"load {load:g} + {slot.credits:g} exceeds limit {limit:g}"

    return None, None
