from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from allocation import (
    AllocationEngine,
    AllocationPolicy,
    ConsistencyViolation,
    CourseSlot,
    DecisionStatus,
    NotEnrolledError,
    PromotionEvent,
    RejectionReason,
    UnknownCourseError,
    WaitlistEntry,
    check_invariants,
    fixed_credit_limit,
)
from conftest import make_courses, make_request


def test_withdrawal_promotes_waitlist_head(three_for_two):
    engine, _ = three_for_two
    event = engine.withdraw("S1", "C")
    assert event == PromotionEvent(course_id="C", freed_count=1)

    result = engine.promote(event)
    assert [(d.student_id, d.status) for d in result.decisions] == [("S3", DecisionStatus.ASSIGNED)]
    assert result.seats_filled == 1
    assert engine.assigned("C") == {"S2", "S3"}
    assert engine.waitlist("C") == []


def test_earlier_waitlisted_student_is_promoted_first():
    engine = AllocationEngine(make_courses(C=1))
    engine.run([make_request("S3", ["C"], 3), make_request("S1", ["C"], 1), make_request("S2", ["C"], 2)])
    assert engine.waitlist("C") == ["S2", "S3"]

    event = engine.set_capacity("C", 2)
    assert event.freed_count == 1
    result = engine.promote(event)
    assert [d.student_id for d in result.decisions] == ["S2"]
    assert engine.waitlist("C") == ["S3"]


def test_replaying_consumed_event_is_a_no_op(three_for_two):
    engine, _ = three_for_two
    event = engine.withdraw("S1", "C")
    engine.promote(event)
    before = engine.snapshot()

    replay = engine.promote(event)
    assert replay.decisions == ()
    assert replay.seats_filled == 0
    assert engine.snapshot() == before


def test_freed_count_is_capped_by_real_headroom(three_for_two):
    engine, _ = three_for_two
    engine.withdraw("S1", "C")
    result = engine.promote(PromotionEvent("C", 5))
    assert result.seats_filled == 1
    assert len(engine.assigned("C")) == 2


def test_ineligible_candidate_is_dropped_without_consuming_the_seat():
    policy = AllocationPolicy(credit_limit=fixed_credit_limit(default=2))
    engine = AllocationEngine(make_courses(C=1, D=5, E=5), policy)
    run = engine.run(
        [
            make_request("S1", ["C"], 1),
            make_request("S2", ["C", "D", "E"], 2),
            make_request("S3", ["C"], 3),
        ]
    )
    assert [(d.student_id, d.course_id, d.status.value, d.waitlist_position) for d in run.decisions] == [
        ("S1", "C", "ASSIGNED", None),
        ("S2", "C", "WAITLISTED", 1),
        ("S2", "D", "ASSIGNED", None),
        ("S2", "E", "ASSIGNED", None),
        ("S3", "C", "WAITLISTED", 2),
    ]

    result = engine.promote(engine.withdraw("S1", "C"))
    rejected, promoted = result.decisions
    assert rejected.student_id == "S2"
    assert rejected.status is DecisionStatus.REJECTED
    assert rejected.reason is RejectionReason.NO_LONGER_ELIGIBLE
    assert rejected.detail.startswith("credit_limit_exceeded")
    assert (promoted.student_id, promoted.status) == ("S3", DecisionStatus.ASSIGNED)
    assert result.seats_filled == 1
    assert engine.waitlist("C") == []


def test_exhausted_waitlist_leaves_seat_free():
    engine = AllocationEngine(make_courses(C=1))
    engine.run([make_request("S1", ["C"], 1)])
    result = engine.promote(engine.withdraw("S1", "C"))
    assert result.decisions == ()
    assert engine.assigned("C") == set()


def test_unknown_course_and_bad_freed_count_are_reported_as_issues():
    engine = AllocationEngine(make_courses(C=1))
    unknown = engine.promote(PromotionEvent("NOPE", 1))
    assert unknown.issues[0].issue_type == "UNKNOWN_COURSE"

    zero = engine.promote(PromotionEvent("C", 0))
    assert zero.issues[0].issue_type == "INVALID_FREED_COUNT"
    assert zero.decisions == ()


def test_withdrawing_waitlisted_student_frees_no_seat(three_for_two):
    engine, _ = three_for_two
    event = engine.withdraw("S3", "C")
    assert event.freed_count == 0
    assert engine.waitlist("C") == []
    assert engine.assigned("C") == {"S1", "S2"}


def test_withdraw_errors():
    engine = AllocationEngine(make_courses(C=1))
    with pytest.raises(UnknownCourseError):
        engine.withdraw("S1", "NOPE")
    with pytest.raises(NotEnrolledError):
        engine.withdraw("S1", "C")


def test_capacity_cannot_drop_below_assigned_students(three_for_two):
    engine, _ = three_for_two
    with pytest.raises(ConsistencyViolation) as excinfo:
        engine.set_capacity("C", 1)
    assert excinfo.value.code == "CAPACITY_BELOW_ASSIGNED"
    assert engine.assigned("C") == {"S1", "S2"}

    assert engine.set_capacity("C", 2).freed_count == 0


def test_promotion_failure_restores_course_state():
    armed = {"on": False}

    def limit(student_id):
        if armed["on"] and student_id == "S3":
            raise RuntimeError("registrar lookup failed")
        return 10

    engine = AllocationEngine(make_courses(C=1), AllocationPolicy(credit_limit=limit))
    engine.run([make_request("S1", ["C"], 1), make_request("S2", ["C"], 2), make_request("S3", ["C"], 3)])
    engine.withdraw("S1", "C")
    engine.set_capacity("C", 2)
    before = engine.snapshot()

    armed["on"] = True
    with pytest.raises(RuntimeError):
        engine.promote(PromotionEvent("C", 2))
    assert engine.snapshot() == before
    assert engine.waitlist("C") == ["S2", "S3"]


def test_waitlist_head_without_known_request_keeps_its_place():
    slot = CourseSlot("D", 1, prerequisites={"P"}, assigned={"A"}, waitlist=[WaitlistEntry(1.0, 1, "Z")])
    engine = AllocationEngine([slot], AllocationPolicy(credit_limit=fixed_credit_limit(default=18)))
    assert engine.request_for("Z") is None

    result = engine.promote(engine.withdraw("A", "D"))
    assert result.decisions == ()
    assert result.seats_filled == 0
    assert [(i.issue_type, i.student_id, i.course_id) for i in result.issues] == [("UNKNOWN_STUDENT_PROFILE", "Z", "D")]
    assert engine.waitlist("D") == ["Z"]
    assert engine.assigned("D") == set()


def test_unknown_head_blocks_later_candidates_until_its_request_is_known():
    slot = CourseSlot("C", 1, assigned={"A"}, waitlist=[WaitlistEntry(1.0, 1, "Z"), WaitlistEntry(2.0, 2, "Y")])
    requests = [make_request("Y", ["C"], 2)]
    engine = AllocationEngine([slot], requests=requests)
    event = engine.withdraw("A", "C")

    blocked = engine.promote(event)
    assert blocked.decisions == ()
    assert engine.waitlist("C") == ["Z", "Y"]

    engine = AllocationEngine(
        engine.snapshot(),
        requests=requests + [make_request("Z", ["C"], 1)],
    )
    result = engine.promote(event)
    assert [(d.student_id, d.status) for d in result.decisions] == [("Z", DecisionStatus.ASSIGNED)]
    assert engine.waitlist("C") == ["Y"]


def test_concurrent_promotions_on_disjoint_courses_keep_invariants():
    course_ids = [f"C{i}" for i in range(5)]
    engine = AllocationEngine(make_courses(**{cid: 5 for cid in course_ids}))
    engine.run([make_request(f"S{n:02d}", course_ids, n) for n in range(50)])

    expected = {}
    for cid in course_ids:
        queue = engine.waitlist(cid)
        expected[cid] = (engine.assigned(cid) - {"S00", "S01", "S02"}) | set(queue[:3])

    def churn(cid):
        for sid in ("S00", "S01", "S02"):
            engine.promote(engine.withdraw(sid, cid))

    with ThreadPoolExecutor(max_workers=len(course_ids)) as pool:
        list(pool.map(churn, course_ids))

    snapshot = engine.snapshot()
    check_invariants(snapshot)
    for cid in course_ids:
        assert snapshot[cid].assigned == expected[cid]
        assert len(snapshot[cid].waitlist) == 42
