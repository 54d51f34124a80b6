from __future__ import annotations

import logging
import threading
import uuid
from contextlib import ExitStack, contextmanager
from typing import Callable, Iterable, Iterator, Mapping, Sequence

from allocation.eligibility import check_eligibility
from allocation.errors import AllocationAborted, ConsistencyViolation, NotEnrolledError, UnknownCourseError
from allocation.ordering import order_requests
from allocation.policy import AllocationPolicy
from allocation.promotion import promote_waitlist
from allocation.state import CourseState, check_invariants
from allocation.types import (
    AllocationConfig,
    AllocationDecision,
    AllocationResult,
    CourseSlot,
    DecisionStatus,
    PromotionEvent,
    PromotionResult,
    RejectionReason,
    StudentRequest,
    ValidationIssue,
    WaitlistEntry,
    timestamp_key,
)


logger = logging.getLogger(__name__)


# Called after a pass or promotion commits, with (run_id, decisions).
DecisionSink = Callable[[str, Sequence[AllocationDecision]], None]


def _decide(
    state: CourseState,
    request: StudentRequest,
    course_id: str,
    *,
    rank: int,
    sequence: int,
    policy: AllocationPolicy,
    issues: list[ValidationIssue],
) -> AllocationDecision:
    student_id = request.student_id
    slot = state.courses.get(course_id)
    if slot is None:
        issues.append(
            ValidationIssue(
                issue_type="UNKNOWN_COURSE",
                message=f"Request from '{student_id}' references unknown course '{course_id}'.",
                student_id=student_id,
                course_id=course_id,
                metadata={"rank": rank},
            )
        )
        return AllocationDecision(
            student_id=student_id,
            course_id=course_id,
            status=DecisionStatus.REJECTED,
            reason=RejectionReason.UNKNOWN_COURSE,
            rank=rank,
            sequence=sequence,
        )

    # Re-runs over committed state leave existing seats and waitlist slots alone.
    if student_id in slot.assigned:
        return AllocationDecision(
            student_id=student_id,
            course_id=course_id,
            status=DecisionStatus.ASSIGNED,
            rank=rank,
            sequence=sequence,
            detail="already assigned",
        )
    position = slot.waitlist_position(student_id)
    if position is not None:
        return AllocationDecision(
            student_id=student_id,
            course_id=course_id,
            status=DecisionStatus.WAITLISTED,
            rank=rank,
            sequence=sequence,
            waitlist_position=position,
            detail="already waitlisted",
        )

    reason, detail = check_eligibility(state, request, slot, policy)
    if reason is not None:
        return AllocationDecision(
            student_id=student_id,
            course_id=course_id,
            status=DecisionStatus.REJECTED,
            reason=reason,
            rank=rank,
            sequence=sequence,
            detail=detail,
        )

    # Freed seats belong to the waitlist head until a promotion fills them.
    if slot.free_seats > 0 and not slot.waitlist:
        state.assign(student_id, course_id)
        return AllocationDecision(
            student_id=student_id,
            course_id=course_id,
            status=DecisionStatus.ASSIGNED,
            rank=rank,
            sequence=sequence,
        )

    entry = WaitlistEntry(timestamp=timestamp_key(request.submitted_at), sequence=sequence, student_id=student_id)
    position = state.enqueue(course_id, entry)
    return AllocationDecision(
        student_id=student_id,
        course_id=course_id,
        status=DecisionStatus.WAITLISTED,
        rank=rank,
        sequence=sequence,
        waitlist_position=position,
    )


def allocate(
    state: CourseState,
    ordered: Sequence[StudentRequest],
    policy: AllocationPolicy,
    config: AllocationConfig,
) -> tuple[list[AllocationDecision], list[ValidationIssue]]:
    """Greedy single pass over the ordered requests, mutating `state` in place.

    Every preference of every student is evaluated in rank order; rank only
    matters relative to other students competing for the same course.
    """

    decisions: list[AllocationDecision] = []
    issues: list[ValidationIssue] = []
    for sequence, request in enumerate(ordered, start=1):
        holds_seat = False
        for rank, course_id in enumerate(request.preferences, start=1):
            if holds_seat and not config.multi_course:
                break
            decision = _decide(
                state,
                request,
                course_id,
                rank=rank,
                sequence=sequence,
                policy=policy,
                issues=issues,
            )
            logger.debug(
                "%s -> %s: %s%s",
                request.student_id,
                course_id,
                decision.status.value,
                f" ({decision.reason.value})" if decision.reason is not None else "",
            )
            decisions.append(decision)
            if decision.status is DecisionStatus.ASSIGNED:
                holds_seat = True
    return decisions, issues


class AllocationEngine:
    """Course allocation over an in-memory course set.

    Owns only transient working state. Full passes are atomic: they run on a
    copy of the course state that replaces the live state only once the seat
    and waitlist invariants have been re-checked.
    """

    def __init__(
        self,
        courses: Mapping[str, CourseSlot] | Iterable[CourseSlot],
        policy: AllocationPolicy | None = None,
        *,
        sinks: Iterable[DecisionSink] = (),
        requests: Iterable[StudentRequest] = (),
    ):
        state = CourseState(courses)
        check_invariants(state.courses)
        self._state = state
        self._policy = policy or AllocationPolicy()
        self._sinks: list[DecisionSink] = list(sinks)
        # Most recent committed request per student; promotions evaluate against it.
        self._requests: dict[str, StudentRequest] = {}
        for req in order_requests(requests).ordered:
            self._requests[req.student_id] = req

        self._course_locks: dict[str, threading.Lock] = {cid: threading.Lock() for cid in state.courses}
        self._student_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _all_courses_locked(self) -> Iterator[None]:
        with ExitStack() as stack:
            for course_id in sorted(self._course_locks):
                stack.enter_context(self._course_locks[course_id])
            yield

    def _course_lock(self, course_id: str) -> threading.Lock:
        lock = self._course_locks.get(course_id)
        if lock is None:
            raise UnknownCourseError(course_id)
        return lock

    def _student_lock(self, student_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._student_locks.get(student_id)
            if lock is None:
                lock = self._student_locks[student_id] = threading.Lock()
            return lock

    def add_sink(self, sink: DecisionSink) -> None:
        self._sinks.append(sink)

    def _notify(self, run_id: str, decisions: Sequence[AllocationDecision]) -> None:
        for sink in list(self._sinks):
            try:
                sink(run_id, decisions)
            except Exception:
                # State is already committed; a failing sink must not undo it.
                logger.exception("Decision sink %r failed for run %s", sink, run_id)

    def run(self, requests: Iterable[StudentRequest], config: AllocationConfig | None = None) -> AllocationResult:
        config = config or AllocationConfig()
        run_id = str(uuid.uuid4())

        ordering = order_requests(requests, config)
        logger.info(
            "Allocation run %s (%s %s): %d request(s), %d excluded",
            run_id,
            config.academic_year or "-",
            config.term or "-",
            len(ordering.ordered),
            ordering.excluded,
        )
        if ordering.total and ordering.excluded / ordering.total > config.abort_invalid_ratio:
            logger.warning(
                "Aborting run %s: %d of %d request(s) failed validation",
                run_id,
                ordering.excluded,
                ordering.total,
            )
            raise AllocationAborted(
                f"{ordering.excluded} of {ordering.total} requests failed validation; nothing was applied.",
                issues=ordering.issues,
            )

        with self._all_courses_locked():
            working = self._state.copy()
            try:
                decisions, issues = allocate(working, ordering.ordered, self._policy, config)
                check_invariants(working.courses)
            except ConsistencyViolation as exc:
                logger.error("Run %s aborted on consistency violation %s: %s", run_id, exc.code, exc)
                raise
            self._state = working
            for req in ordering.ordered:
                self._requests[req.student_id] = req
            courses = working.snapshot()

        result = AllocationResult(
            run_id=run_id,
            config=config,
            decisions=tuple(decisions),
            issues=tuple(ordering.issues) + tuple(issues),
            courses=courses,
        )
        summary = result.summary()
        logger.info(
            "Allocation run %s committed: %d assigned, %d waitlisted, %d rejected",
            run_id,
            summary["ASSIGNED"],
            summary["WAITLISTED"],
            summary["REJECTED"],
        )
        self._notify(run_id, result.decisions)
        return result

    def promote(self, event: PromotionEvent) -> PromotionResult:
        event_id = str(uuid.uuid4())
        lock = self._course_locks.get(event.course_id)
        if lock is None:
            # Reported as data by promote_waitlist; no lock to take.
            return promote_waitlist(self._state, event, self._requests, self._policy, event_id=event_id)

        with lock:
            backup = self._state.backup(event.course_id)
            try:
                result = promote_waitlist(
                    self._state,
                    event,
                    self._requests,
                    self._policy,
                    event_id=event_id,
                    student_guard=self._student_lock,
                )
                check_invariants({event.course_id: self._state.courses[event.course_id]})
            except Exception:
                self._state.restore(backup)
                raise

        if result.decisions:
            self._notify(event_id, result.decisions)
        return result

    def withdraw(self, student_id: str, course_id: str) -> PromotionEvent:
        """Apply an external withdrawal and return the event the caller should emit."""

        with self._course_lock(course_id), self._student_lock(student_id):
            slot = self._state.courses[course_id]
            if student_id in slot.assigned:
                self._state.unassign(student_id, course_id)
                logger.info("Withdrew %s from %s; 1 seat freed", student_id, course_id)
                return PromotionEvent(course_id=course_id, freed_count=1)
            if self._state.dequeue(student_id, course_id):
                logger.info("Removed %s from the waitlist of %s", student_id, course_id)
                return PromotionEvent(course_id=course_id, freed_count=0)
        raise NotEnrolledError(student_id, course_id)

    def set_capacity(self, course_id: str, capacity: int) -> PromotionEvent:
        with self._course_lock(course_id):
            slot = self._state.courses[course_id]
            if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
                raise ConsistencyViolation(
                    "INVALID_CAPACITY",
                    f"Capacity for '{course_id}' must be a positive integer.",
                    details={"course_id": course_id, "capacity": repr(capacity)},
                )
            if capacity < len(slot.assigned):
                raise ConsistencyViolation(
                    "CAPACITY_BELOW_ASSIGNED",
                    f"Cannot reduce '{course_id}' to {capacity} seats with {len(slot.assigned)} students assigned.",
                    details={"course_id": course_id, "capacity": capacity, "assigned": len(slot.assigned)},
                )
            freed = max(0, capacity - slot.capacity)
            slot.capacity = capacity
            logger.info("Capacity of %s set to %d (%d seat(s) freed)", course_id, capacity, freed)
            return PromotionEvent(course_id=course_id, freed_count=freed)

    def snapshot(self) -> dict[str, CourseSlot]:
        with self._all_courses_locked():
            return self._state.snapshot()

    def waitlist(self, course_id: str) -> list[str]:
        with self._course_lock(course_id):
            return self._state.courses[course_id].waitlisted_ids()

    def assigned(self, course_id: str) -> set[str]:
        with self._course_lock(course_id):
            return set(self._state.courses[course_id].assigned)

    def request_for(self, student_id: str) -> StudentRequest | None:
        return self._requests.get(student_id)
