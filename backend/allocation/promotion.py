from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Callable, ContextManager, Mapping

from allocation.eligibility import check_eligibility
from allocation.policy import AllocationPolicy
from allocation.state import CourseState
from allocation.types import (
    AllocationDecision,
    DecisionStatus,
    PromotionEvent,
    PromotionResult,
    RejectionReason,
    StudentRequest,
    ValidationIssue,
)


logger = logging.getLogger(__name__)


def promote_waitlist(
    state: CourseState,
    event: PromotionEvent,
    requests: Mapping[str, StudentRequest],
    policy: AllocationPolicy,
    *,
    event_id: str = "",
    student_guard: Callable[[str], ContextManager] | None = None,
) -> PromotionResult:
    """Fill freed seats of one course from the head of its waitlist.

    The number of seats filled is bounded by the course's real headroom, so
    replaying an event that was already consumed changes nothing. Candidates
    that no longer pass eligibility are dropped from the waitlist without
    consuming a seat. A head whose request is unknown stops promotion: it keeps
    its place and the remaining seats stay free until the request is supplied.
    """

    slot = state.courses.get(event.course_id)
    if slot is None:
        issue = ValidationIssue(
            issue_type="UNKNOWN_COURSE",
            message=f"Promotion event references unknown course '{event.course_id}'.",
            course_id=event.course_id,
        )
        return PromotionResult(event=event, decisions=(), issues=(issue,), event_id=event_id)

    if isinstance(event.freed_count, bool) or not isinstance(event.freed_count, int) or event.freed_count < 1:
        issue = ValidationIssue(
            issue_type="INVALID_FREED_COUNT",
            message="Promotion event must free at least one seat.",
            severity="WARN",
            course_id=event.course_id,
            metadata={"freed_count": repr(event.freed_count)},
        )
        return PromotionResult(event=event, decisions=(), issues=(issue,), event_id=event_id)

    seats = min(event.freed_count, slot.free_seats)
    if seats == 0:
        logger.debug("Promotion for %s is a no-op: no headroom", event.course_id)
        return PromotionResult(event=event, decisions=(), event_id=event_id)

    guard = student_guard or (lambda _sid: nullcontext())
    decisions: list[AllocationDecision] = []
    issues: list[ValidationIssue] = []
    filled = 0
    while filled < seats and slot.waitlist:
        entry = slot.waitlist[0]
        student_id = entry.student_id
        request = requests.get(student_id)
        if request is None:
            issues.append(
                ValidationIssue(
                    issue_type="UNKNOWN_STUDENT_PROFILE",
                    message=(
                        f"No request is known for waitlisted student '{student_id}'; "
                        f"promotion for '{event.course_id}' stopped at this entry."
                    ),
                    severity="WARN",
                    student_id=student_id,
                    course_id=event.course_id,
                    metadata={"seats_left": seats - filled},
                )
            )
            logger.warning("Promotion for %s halted at %s: no known request", event.course_id, student_id)
            break

        with guard(student_id):
            reason, detail = check_eligibility(state, request, slot, policy)
            if reason is not None:
                state.dequeue(student_id, event.course_id)
                decisions.append(
                    AllocationDecision(
                        student_id=student_id,
                        course_id=event.course_id,
                        status=DecisionStatus.REJECTED,
                        reason=RejectionReason.NO_LONGER_ELIGIBLE,
                        sequence=entry.sequence,
                        detail=f"{reason.value}: {detail}",
                    )
                )
                logger.debug("Dropped %s from waitlist of %s (%s)", student_id, event.course_id, reason.value)
                continue

            state.assign(student_id, event.course_id)
            filled += 1
            decisions.append(
                AllocationDecision(
                    student_id=student_id,
                    course_id=event.course_id,
                    status=DecisionStatus.ASSIGNED,
                    sequence=entry.sequence,
                    detail="promoted from waitlist",
                )
            )

    logger.info(
        "Promotion for %s: %d seat(s) available, %d filled, %d dropped",
        event.course_id,
        seats,
        filled,
        len(decisions) - filled,
    )
    return PromotionResult(
        event=event,
        decisions=tuple(decisions),
        issues=tuple(issues),
        seats_filled=filled,
        event_id=event_id,
    )
