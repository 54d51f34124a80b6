from __future__ import annotations


def _snapshot_body(**overrides):
    body = {
        "config": {"academic_year": "2026-27", "term": "FALL"},
        "courses": [{"course_id": "C", "capacity": 2}],
        "requests": [
            {"student_id": "S1", "preferences": ["C"], "submitted_at": 1},
            {"student_id": "S2", "preferences": ["C"], "submitted_at": 2},
            {"student_id": "S3", "preferences": ["C"], "submitted_at": 3},
        ],
    }
    body.update(overrides)
    return body


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"app": "ok", "database": "ok"}


def test_run_allocation_persists_decisions(client):
    resp = client.post("/api/allocation/runs", json=_snapshot_body())
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "COMMITTED"
    assert [(d["student_id"], d["status"]) for d in data["decisions"]] == [
        ("S1", "ASSIGNED"),
        ("S2", "ASSIGNED"),
        ("S3", "WAITLISTED"),
    ]
    assert data["summary"]["WAITLISTED"] == 1
    (course,) = data["courses"]
    assert course["assigned"] == ["S1", "S2"]
    assert [w["student_id"] for w in course["waitlist"]] == ["S3"]

    stored = client.get(f"/api/allocation/runs/{data['run_id']}/decisions").json()
    assert stored["decisions"] == data["decisions"]

    detail = client.get(f"/api/allocation/runs/{data['run_id']}").json()
    assert detail["status"] == "COMMITTED"
    assert detail["academic_year"] == "2026-27"
    assert detail["engine_run_id"] == data["engine_run_id"]
    assert detail["decisions_total"] == 3

    runs = client.get("/api/allocation/runs").json()["runs"]
    assert [r["id"] for r in runs] == [data["run_id"]]


def test_policy_inputs_are_applied(client):
    body = _snapshot_body(
        courses=[
            {"course_id": "A", "capacity": 5},
            {"course_id": "B", "capacity": 5},
            {"course_id": "D", "capacity": 5, "prerequisites": ["MATH1"]},
        ],
        requests=[{"student_id": "S1", "preferences": ["D", "A", "B"], "submitted_at": "2026-08-01T09:00:00Z"}],
        policy={"exclusive_groups": [["A", "B"]]},
    )
    data = client.post("/api/allocation/runs", json=body).json()
    assert [(d["course_id"], d["status"], d["reason"]) for d in data["decisions"]] == [
        ("D", "REJECTED", "prerequisite_not_met"),
        ("A", "ASSIGNED", None),
        ("B", "REJECTED", "schedule_conflict"),
    ]


def test_aborted_run_is_recorded_with_issues(client):
    body = _snapshot_body(
        requests=[
            {"student_id": "S1", "preferences": ["C"], "submitted_at": 1},
            {"student_id": "S2", "preferences": ["C"]},
            {"student_id": "S3", "preferences": ["C", "C"], "submitted_at": 3},
        ]
    )
    resp = client.post("/api/allocation/runs", json=body)
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["error"] == "ALLOCATION_ABORTED"
    assert {i["issue_type"] for i in detail["issues"]} == {"INVALID_TIMESTAMP", "DUPLICATE_PREFERENCE"}

    run = client.get(f"/api/allocation/runs/{detail['run_id']}").json()
    assert run["status"] == "ABORTED"
    assert run["decisions_total"] == 0
    assert len(run["issues"]) == 2


def test_inconsistent_snapshot_is_an_integrity_error(client):
    body = _snapshot_body(courses=[{"course_id": "C", "capacity": 1, "assigned": ["X", "Y"]}])
    resp = client.post("/api/allocation/runs", json=body)
    assert resp.status_code == 500
    detail = resp.json()["detail"]
    assert detail["error"] == "ALLOCATION_INTEGRITY_ERROR"
    assert detail["type"] == "CAPACITY_EXCEEDED"

    run = client.get(f"/api/allocation/runs/{detail['run_id']}").json()
    assert run["status"] == "ERROR"


def test_withdrawal_promotes_from_waitlist(client):
    run = client.post("/api/allocation/runs", json=_snapshot_body()).json()
    body = {
        "courses": run["courses"],
        "requests": _snapshot_body()["requests"],
        "withdrawal": {"student_id": "S1", "course_id": "C"},
    }
    resp = client.post("/api/allocation/promotions", json=body)
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["freed_count"] == 1
    assert data["seats_filled"] == 1
    assert [(d["student_id"], d["status"]) for d in data["decisions"]] == [("S3", "ASSIGNED")]
    assert data["courses"][0]["assigned"] == ["S2", "S3"]
    assert data["courses"][0]["waitlist"] == []

    stored = client.get(f"/api/allocation/runs/{data['run_id']}/decisions").json()["decisions"]
    assert [d["student_id"] for d in stored] == ["S3"]


def test_promotion_without_the_waitlisted_students_request_reports_an_issue(client):
    run = client.post("/api/allocation/runs", json=_snapshot_body()).json()
    body = {
        "courses": run["courses"],
        "requests": [],
        "withdrawal": {"student_id": "S1", "course_id": "C"},
    }
    data = client.post("/api/allocation/promotions", json=body).json()
    assert data["decisions"] == []
    assert [(i["issue_type"], i["student_id"]) for i in data["issues"]] == [("UNKNOWN_STUDENT_PROFILE", "S3")]
    assert data["courses"][0]["assigned"] == ["S2"]
    assert [w["student_id"] for w in data["courses"][0]["waitlist"]] == ["S3"]

    stored = client.get(f"/api/allocation/runs/{data['run_id']}").json()
    assert [i["issue_type"] for i in stored["issues"]] == ["UNKNOWN_STUDENT_PROFILE"]


def test_promotion_requires_exactly_one_trigger(client):
    resp = client.post("/api/allocation/promotions", json={"courses": [{"course_id": "C", "capacity": 1}]})
    assert resp.status_code == 422


def test_withdrawing_unknown_enrollment_is_404(client):
    body = {
        "courses": [{"course_id": "C", "capacity": 1}],
        "withdrawal": {"student_id": "S9", "course_id": "C"},
    }
    resp = client.post("/api/allocation/promotions", json=body)
    assert resp.status_code == 404
    assert resp.json()["detail"] == "STUDENT_NOT_ENROLLED"


def test_unknown_run_is_404(client):
    resp = client.get("/api/allocation/runs/00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404
