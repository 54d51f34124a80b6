from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import OperationalError as SAOperationalError
from sqlalchemy.orm import Session

from allocation.engine import AllocationEngine
from allocation.errors import AllocationAborted, ConsistencyViolation, NotEnrolledError, UnknownCourseError
from allocation.types import PromotionEvent, PromotionResult
from core.database import (
    DatabaseUnavailableError,
    get_db,
    is_transient_db_connectivity_error,
    validate_db_connection,
)
from models.allocation_run import AllocationRun
from schemas.allocation import (
    AllocationDecisionOut,
    ListRunDecisionsResponse,
    ListRunsResponse,
    PromotionRequest,
    PromotionResponse,
    RunAllocationRequest,
    RunAllocationResponse,
    RunDetail,
    RunSummary,
    ValidationIssueOut,
)
from services.decision_store import (
    DatabaseDecisionSink,
    count_decisions,
    get_run,
    list_decisions,
    list_issues,
    list_runs,
    persist_issues,
)
from services.snapshots import (
    build_config,
    build_courses,
    build_policy,
    build_requests,
    course_out,
    decision_out,
    issue_out,
)


router = APIRouter()

logger = logging.getLogger(__name__)


def _mark_run(db: Session, run: AllocationRun, *, status: str, notes: str) -> None:
    # Best effort: the caller needs to see the first failure, not this one.
    try:
        db.rollback()
        run.status = status
        run.notes = notes[:500]
        db.add(run)
        db.commit()
    except Exception:
        logger.exception("Could not record status %s for allocation run %s", status, run.id)


def _integrity_error(exc: ConsistencyViolation, run: AllocationRun) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={
            "error": "ALLOCATION_INTEGRITY_ERROR",
            "type": exc.code,
            "message": str(exc),
            "run_id": str(run.id),
            "details": exc.details,
        },
    )


@router.post("/runs", response_model=RunAllocationResponse)
def run_allocation(
    payload: RunAllocationRequest,
    db: Session = Depends(get_db),
) -> RunAllocationResponse:
    # Explicit connectivity validation before creating any rows.
    validate_db_connection(db)

    config = build_config(payload.config)
    run = AllocationRun(
        kind="RUN",
        status="CREATED",
        academic_year=config.academic_year,
        term=config.term,
        requests_total=len(payload.requests),
        parameters={
            "courses": len(payload.courses),
            "multi_course": config.multi_course,
            "abort_invalid_ratio": config.abort_invalid_ratio,
            "exclusive_groups": len(payload.policy.exclusive_groups),
        },
    )
    db.add(run)
    # Persist the run id even if the pass fails later.
    db.commit()

    sink = DatabaseDecisionSink(db, run)
    try:
        engine = AllocationEngine(build_courses(payload.courses), build_policy(payload.policy), sinks=[sink])
        result = engine.run(build_requests(payload.requests), config)
    except AllocationAborted as exc:
        _mark_run(db, run, status="ABORTED", notes=str(exc))
        persist_issues(db, run=run, issues=exc.issues)
        db.commit()
        raise HTTPException(
            status_code=422,
            detail={
                "error": "ALLOCATION_ABORTED",
                "message": str(exc),
                "run_id": str(run.id),
                "issues": [issue_out(i).model_dump() for i in exc.issues],
            },
        )
    except ConsistencyViolation as exc:
        _mark_run(db, run, status="ERROR", notes=f"ConsistencyViolation({exc.code}): {exc}")
        raise _integrity_error(exc, run)

    try:
        run.status = "COMMITTED"
        persist_issues(db, run=run, issues=result.issues)
        db.commit()
    except SAOperationalError as exc:
        db.rollback()
        if is_transient_db_connectivity_error(exc):
            raise DatabaseUnavailableError("Database temporarily unavailable") from exc
        raise

    return RunAllocationResponse(
        run_id=run.id,
        engine_run_id=result.run_id,
        status="COMMITTED",
        summary=result.summary(),
        decisions=[decision_out(d) for d in result.decisions],
        issues=[issue_out(i) for i in result.issues],
        courses=[course_out(slot) for _cid, slot in sorted(result.courses.items())],
    )


@router.post("/promotions", response_model=PromotionResponse)
def promote(
    payload: PromotionRequest,
    db: Session = Depends(get_db),
) -> PromotionResponse:
    validate_db_connection(db)

    trigger = payload.withdrawal or payload.capacity_change or payload.event
    run = AllocationRun(
        kind="PROMOTION",
        status="CREATED",
        requests_total=len(payload.requests),
        parameters={
            "trigger": type(trigger).__name__,
            **trigger.model_dump(),
        },
    )
    db.add(run)
    db.commit()

    sink = DatabaseDecisionSink(db, run)
    try:
        engine = AllocationEngine(
            build_courses(payload.courses),
            build_policy(payload.policy),
            sinks=[sink],
            requests=build_requests(payload.requests),
        )
        if payload.withdrawal is not None:
            event = engine.withdraw(payload.withdrawal.student_id, payload.withdrawal.course_id)
        elif payload.capacity_change is not None:
            event = engine.set_capacity(payload.capacity_change.course_id, payload.capacity_change.capacity)
        else:
            event = PromotionEvent(course_id=payload.event.course_id, freed_count=payload.event.freed_count)

        if payload.event is None and event.freed_count == 0:
            # Waitlist removal or unchanged capacity: nothing to promote.
            result = PromotionResult(event=event, decisions=())
        else:
            result = engine.promote(event)
    except UnknownCourseError as exc:
        _mark_run(db, run, status="ERROR", notes=str(exc))
        raise HTTPException(status_code=404, detail="COURSE_NOT_FOUND")
    except NotEnrolledError as exc:
        _mark_run(db, run, status="ERROR", notes=str(exc))
        raise HTTPException(status_code=404, detail="STUDENT_NOT_ENROLLED")
    except ConsistencyViolation as exc:
        _mark_run(db, run, status="ERROR", notes=f"ConsistencyViolation({exc.code}): {exc}")
        raise _integrity_error(exc, run)

    run.status = "COMMITTED"
    if result.event_id:
        run.engine_run_id = result.event_id
    persist_issues(db, run=run, issues=result.issues)
    db.commit()

    return PromotionResponse(
        run_id=run.id,
        engine_run_id=result.event_id,
        course_id=event.course_id,
        freed_count=event.freed_count,
        seats_filled=result.seats_filled,
        decisions=[decision_out(d) for d in result.decisions],
        issues=[issue_out(i) for i in result.issues],
        courses=[course_out(slot) for _cid, slot in sorted(engine.snapshot().items())],
    )


@router.get("/runs", response_model=ListRunsResponse)
def list_allocation_runs(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> ListRunsResponse:
    return ListRunsResponse(runs=[RunSummary.model_validate(r) for r in list_runs(db, limit=limit)])


@router.get("/runs/{run_id}", response_model=RunDetail)
def get_allocation_run(
    run_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> RunDetail:
    run = get_run(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="RUN_NOT_FOUND")
    summary = RunSummary.model_validate(run)
    return RunDetail(
        **summary.model_dump(),
        decisions_total=count_decisions(db, run.id),
        issues=[
            ValidationIssueOut(
                severity=rec.severity,
                issue_type=rec.issue_type,
                message=rec.message,
                student_id=rec.student_id,
                course_id=rec.course_id,
                details=rec.metadata_json or {},
            )
            for rec in list_issues(db, run.id)
        ],
    )


@router.get("/runs/{run_id}/decisions", response_model=ListRunDecisionsResponse)
def list_allocation_run_decisions(
    run_id: uuid.UUID,
    db: Session = Depends(get_db),
) -> ListRunDecisionsResponse:
    if get_run(db, run_id) is None:
        raise HTTPException(status_code=404, detail="RUN_NOT_FOUND")
    return ListRunDecisionsResponse(
        run_id=run_id,
        decisions=[AllocationDecisionOut.model_validate(rec) for rec in list_decisions(db, run_id)],
    )
