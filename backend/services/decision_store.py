from __future__ import annotations

import logging
import uuid
from typing import Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from allocation.types import AllocationDecision, ValidationIssue
from models.allocation_decision import AllocationDecisionRecord
from models.allocation_issue import AllocationIssueRecord
from models.allocation_run import AllocationRun


logger = logging.getLogger(__name__)


class DatabaseDecisionSink:
    """Decision sink that stages committed decisions on the run's session.

    The caller owns the transaction; nothing is committed here.
    """

    def __init__(self, db: Session, run: AllocationRun):
        self.db = db
        self.run = run
        self.written = 0

    def __call__(self, engine_run_id: str, decisions: Sequence[AllocationDecision]) -> None:
        self.run.engine_run_id = engine_run_id
        for d in decisions:
            self.db.add(
                AllocationDecisionRecord(
                    run_id=self.run.id,
                    position=self.written,
                    student_id=d.student_id,
                    course_id=d.course_id,
                    status=d.status.value,
                    reason=d.reason.value if d.reason is not None else None,
                    rank=d.rank,
                    sequence=d.sequence,
                    waitlist_position=d.waitlist_position,
                    detail=d.detail,
                )
            )
            self.written += 1
        logger.debug("Staged %d decision(s) for run %s", len(decisions), self.run.id)


def persist_issues(db: Session, *, run: AllocationRun, issues: Iterable[ValidationIssue]) -> None:
    for position, i in enumerate(issues):
        db.add(
            AllocationIssueRecord(
                run_id=run.id,
                position=position,
                severity=i.severity,
                issue_type=i.issue_type,
                message=i.message,
                student_id=i.student_id,
                course_id=i.course_id,
                metadata_json=i.metadata or {},
            )
        )


def list_runs(db: Session, *, limit: int = 50) -> list[AllocationRun]:
    q = select(AllocationRun).order_by(AllocationRun.created_at.desc(), AllocationRun.id).limit(limit)
    return list(db.execute(q).scalars().all())


def get_run(db: Session, run_id: uuid.UUID) -> AllocationRun | None:
    return db.get(AllocationRun, run_id)


def count_decisions(db: Session, run_id: uuid.UUID) -> int:
    q = select(func.count()).select_from(AllocationDecisionRecord).where(AllocationDecisionRecord.run_id == run_id)
    return int(db.execute(q).scalar_one())


def list_decisions(db: Session, run_id: uuid.UUID) -> list[AllocationDecisionRecord]:
    q = (
        select(AllocationDecisionRecord)
        .where(AllocationDecisionRecord.run_id == run_id)
        .order_by(AllocationDecisionRecord.position)
    )
    return list(db.execute(q).scalars().all())


def list_issues(db: Session, run_id: uuid.UUID) -> list[AllocationIssueRecord]:
    q = (
        select(AllocationIssueRecord)
        .where(AllocationIssueRecord.run_id == run_id)
        .order_by(AllocationIssueRecord.position)
    )
    return list(db.execute(q).scalars().all())
