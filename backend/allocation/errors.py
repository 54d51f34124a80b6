from __future__ import annotations

from typing import Any


class AllocationError(Exception):
    """Base class for errors raised by the allocation engine."""


class ConsistencyViolation(AllocationError):
    """An invariant on course state would be broken; the pass must not commit."""

    def __init__(self, code: str, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class AllocationAborted(AllocationError):
    """Raised when a pass is cancelled before commit. Nothing has been applied."""

    def __init__(self, message: str, *, issues: list | tuple = ()):
        super().__init__(message)
        self.issues = tuple(issues)


class UnknownCourseError(AllocationError, LookupError):
    def __init__(self, course_id: str):
        super().__init__(f"Unknown course '{course_id}'.")
        self.course_id = course_id


class NotEnrolledError(AllocationError, LookupError):
    def __init__(self, student_id: str, course_id: str):
        super().__init__(f"Student '{student_id}' is neither assigned to nor waitlisted for '{course_id}'.")
        self.student_id = student_id
        self.course_id = course_id
