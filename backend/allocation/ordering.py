from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from allocation.types import AllocationConfig, StudentRequest, ValidationIssue, timestamp_key


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderingResult:
    ordered: tuple[StudentRequest, ...]
    issues: tuple[ValidationIssue, ...]
    # Number of distinct requests that were excluded as malformed.
    excluded: int = 0

    @property
    def total(self) -> int:
        return len(self.ordered) + self.excluded


def _window_issue(req: StudentRequest, key: float, config: AllocationConfig | None) -> ValidationIssue | None:
    if config is None:
        return None
    opens = timestamp_key(config.enrollment_opens_at) if config.enrollment_opens_at is not None else None
    closes = timestamp_key(config.enrollment_closes_at) if config.enrollment_closes_at is not None else None
    if (opens is not None and key < opens) or (closes is not None and key > closes):
        return ValidationIssue(
            issue_type="OUTSIDE_ENROLLMENT_WINDOW",
            message=f"Request from '{req.student_id}' was submitted outside the enrollment window.",
            student_id=req.student_id,
            metadata={"submitted_at": str(req.submitted_at)},
        )
    return None


def order_requests(
    requests: Iterable[StudentRequest],
    config: AllocationConfig | None = None,
) -> OrderingResult:
    """Return the deterministic processing order for one allocation pass.

    Sorted by submission timestamp ascending, ties broken by student id
    ascending. Malformed requests are excluded and reported; when a student
    submitted more than once only the newest version is kept.
    """

    issues: list[ValidationIssue] = []
    excluded = 0
    latest: dict[str, tuple[float, int, StudentRequest]] = {}

    for req in requests:
        if not isinstance(req.student_id, str) or not req.student_id.strip():
            issues.append(
                ValidationIssue(
                    issue_type="INVALID_STUDENT_ID",
                    message="Request has a missing or empty student id.",
                    metadata={"student_id": repr(req.student_id)},
                )
            )
            excluded += 1
            continue

        key = timestamp_key(req.submitted_at)
        if key is None:
            issues.append(
                ValidationIssue(
                    issue_type="INVALID_TIMESTAMP",
                    message=f"Request from '{req.student_id}' has a missing or invalid submission timestamp.",
                    student_id=req.student_id,
                    metadata={"submitted_at": repr(req.submitted_at)},
                )
            )
            excluded += 1
            continue

        if len(set(req.preferences)) != len(req.preferences):
            dupes = sorted(c for c, n in Counter(req.preferences).items() if n > 1)
            issues.append(
                ValidationIssue(
                    issue_type="DUPLICATE_PREFERENCE",
                    message=f"Request from '{req.student_id}' lists a course more than once.",
                    student_id=req.student_id,
                    metadata={"duplicates": dupes},
                )
            )
            excluded += 1
            continue

        window_issue = _window_issue(req, key, config)
        if window_issue is not None:
            issues.append(window_issue)
            excluded += 1
            continue

        prev = latest.get(req.student_id)
        if prev is None:
            latest[req.student_id] = (key, req.version, req)
            continue

        if (key, req.version) > (prev[0], prev[1]):
            superseded, latest[req.student_id] = prev[2], (key, req.version, req)
        else:
            superseded = req
        issues.append(
            ValidationIssue(
                issue_type="SUPERSEDED_REQUEST",
                message=f"An older request from '{req.student_id}' was superseded by a newer submission.",
                severity="INFO",
                student_id=req.student_id,
                metadata={"submitted_at": str(superseded.submitted_at), "version": superseded.version},
            )
        )

    ordered = sorted(latest.values(), key=lambda item: (item[0], item[2].student_id))
    if excluded:
        logger.info("Request ordering excluded %d malformed request(s)", excluded)
    return OrderingResult(ordered=tuple(item[2] for item in ordered), issues=tuple(issues), excluded=excluded)
