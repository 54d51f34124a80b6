from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Iterable, Mapping


ConflictPredicate = Callable[[str, str], bool]
CreditLimitPredicate = Callable[[str], float]
PrerequisitePredicate = Callable[[AbstractSet[str], AbstractSet[str]], bool]


def no_conflicts(_course_a: str, _course_b: str) -> bool:
    return False


def unlimited_credits(_student_id: str) -> float:
    return math.inf


def all_prerequisites_held(prerequisites: AbstractSet[str], satisfied: AbstractSet[str]) -> bool:
    """Default rule: every prerequisite is completed or currently assigned."""

    return prerequisites <= satisfied


@dataclass(frozen=True)
class AllocationPolicy:
    """Institution policy, injected as plain callables.

    The engine never interprets policy on its own; it asks these predicates
    and acts on their verdicts.
    """

    conflicts: ConflictPredicate = field(default=no_conflicts)
    credit_limit: CreditLimitPredicate = field(default=unlimited_credits)
    prerequisites_met: PrerequisitePredicate = field(default=all_prerequisites_held)


def exclusive_groups(groups: Iterable[Iterable[str]]) -> ConflictPredicate:
    """Build a conflict predicate from mutually-exclusive course groups.

    Two distinct courses conflict when they share at least one group, e.g. the
    sections of one course or courses taught in the same time slot.
    """

    membership: dict[str, set[int]] = {}
    for idx, group in enumerate(groups):
        for course_id in group:
            membership.setdefault(course_id, set()).add(idx)

    def _conflicts(course_a: str, course_b: str) -> bool:
        if course_a == course_b:
            return False
        return bool(membership.get(course_a, set()) & membership.get(course_b, set()))

    return _conflicts


def fixed_credit_limit(default: float | None = None, overrides: Mapping[str, float] | None = None) -> CreditLimitPredicate:
    per_student = dict(overrides or {})
    fallback = math.inf if default is None else default

    def _limit(student_id: str) -> float:
        return per_student.get(student_id, fallback)

    return _limit
