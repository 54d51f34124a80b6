from __future__ import annotations

import bisect
from collections import defaultdict
from typing import Iterable, Mapping

from allocation.errors import ConsistencyViolation
from allocation.types import CourseSlot, WaitlistEntry


def check_invariants(courses: Mapping[str, CourseSlot]) -> None:
    """Raise ConsistencyViolation if any course breaks a seat or waitlist invariant."""

    for course_id, slot in courses.items():
        if isinstance(slot.capacity, bool) or not isinstance(slot.capacity, int) or slot.capacity < 1:
            raise ConsistencyViolation(
                "INVALID_CAPACITY",
                f"Course '{course_id}' has a non-positive or non-integer capacity.",
                details={"course_id": course_id, "capacity": repr(slot.capacity)},
            )
        if len(slot.assigned) > slot.capacity:
            raise ConsistencyViolation(
                "CAPACITY_EXCEEDED",
                f"Course '{course_id}' has {len(slot.assigned)} assigned students for capacity {slot.capacity}.",
                details={"course_id": course_id, "assigned": len(slot.assigned), "capacity": slot.capacity},
            )
        waitlisted = slot.waitlisted_ids()
        if len(set(waitlisted)) != len(waitlisted):
            raise ConsistencyViolation(
                "DUPLICATE_WAITLIST_ENTRY",
                f"Course '{course_id}' lists a student more than once on its waitlist.",
                details={"course_id": course_id},
            )
        both = sorted(slot.assigned.intersection(waitlisted))
        if both:
            raise ConsistencyViolation(
                "ASSIGNED_AND_WAITLISTED",
                f"Course '{course_id}' has students that are both assigned and waitlisted.",
                details={"course_id": course_id, "student_ids": both},
            )
        if slot.waitlist != sorted(slot.waitlist):
            raise ConsistencyViolation(
                "WAITLIST_OUT_OF_ORDER",
                f"Waitlist of course '{course_id}' is not ordered by submission time.",
                details={"course_id": course_id},
            )


class CourseState:
    """Mutable working copy of the course set plus a student -> courses index."""

    def __init__(self, courses: Mapping[str, CourseSlot] | Iterable[CourseSlot]):
        slots = courses.values() if isinstance(courses, Mapping) else courses
        self.courses: dict[str, CourseSlot] = {}
        for slot in slots:
            if slot.course_id in self.courses:
                raise ConsistencyViolation(
                    "DUPLICATE_COURSE",
                    f"Course '{slot.course_id}' was supplied more than once.",
                    details={"course_id": slot.course_id},
                )
            self.courses[slot.course_id] = slot.copy()
        self._by_student: dict[str, set[str]] = defaultdict(set)
        self._reindex()

    def _reindex(self) -> None:
        self._by_student.clear()
        for course_id, slot in self.courses.items():
            for student_id in slot.assigned:
                self._by_student[student_id].add(course_id)

    def copy(self) -> CourseState:
        return CourseState(self.courses)

    def snapshot(self) -> dict[str, CourseSlot]:
        return {cid: slot.copy() for cid, slot in self.courses.items()}

    def assigned_courses(self, student_id: str) -> set[str]:
        return set(self._by_student.get(student_id, ()))

    def credit_load(self, student_id: str, *, exclude: str | None = None) -> float:
        return sum(
            self.courses[cid].credits for cid in self._by_student.get(student_id, ()) if cid != exclude
        )

    def assign(self, student_id: str, course_id: str) -> None:
        slot = self.courses[course_id]
        if slot.free_seats <= 0:
            raise ConsistencyViolation(
                "CAPACITY_EXCEEDED",
                f"Assigning '{student_id}' would exceed the capacity of '{course_id}'.",
                details={"course_id": course_id, "student_id": student_id, "capacity": slot.capacity},
            )
        self.dequeue(student_id, course_id)
        slot.assigned.add(student_id)
        self._by_student[student_id].add(course_id)

    def unassign(self, student_id: str, course_id: str) -> None:
        self.courses[course_id].assigned.discard(student_id)
        held = self._by_student.get(student_id)
        if held is not None:
            held.discard(course_id)
            if not held:
                del self._by_student[student_id]

    def enqueue(self, course_id: str, entry: WaitlistEntry) -> int:
        """Insert into the waitlist in (timestamp, sequence) order; returns the 1-based position."""

        waitlist = self.courses[course_id].waitlist
        idx = bisect.bisect_right(waitlist, entry)
        waitlist.insert(idx, entry)
        return idx + 1

    def dequeue(self, student_id: str, course_id: str) -> bool:
        waitlist = self.courses[course_id].waitlist
        for idx, entry in enumerate(waitlist):
            if entry.student_id == student_id:
                del waitlist[idx]
                return True
        return False

    def backup(self, course_id: str) -> CourseSlot:
        return self.courses[course_id].copy()

    def restore(self, slot: CourseSlot) -> None:
        """Put back a single course from `backup`, touching only its own index entries."""

        for student_id in list(self.courses[slot.course_id].assigned):
            self.unassign(student_id, slot.course_id)
        self.courses[slot.course_id] = slot.copy()
        for student_id in slot.assigned:
            self._by_student[student_id].add(slot.course_id)
