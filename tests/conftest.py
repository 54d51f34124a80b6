from __future__ import annotations

import os

# Must be set before core.config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("ENVIRONMENT", "development")

import pytest

from allocation import AllocationEngine, CourseSlot, StudentRequest


def make_request(student_id, prefs, t, **kwargs) -> StudentRequest:
    return StudentRequest(student_id=student_id, preferences=tuple(prefs), submitted_at=t, **kwargs)


def make_courses(**capacities) -> list[CourseSlot]:
    return [CourseSlot(course_id=cid, capacity=cap) for cid, cap in capacities.items()]


@pytest.fixture
def three_for_two():
    """Course C with two seats and three students who all rank it first."""

    engine = AllocationEngine(make_courses(C=2))
    result = engine.run(
        [
            make_request("S1", ["C"], 1),
            make_request("S2", ["C"], 2),
            make_request("S3", ["C"], 3),
        ]
    )
    return engine, result


@pytest.fixture
def client():
    from fastapi.testclient import TestClient

    from core.database import ENGINE
    from main import app
    from models import Base

    Base.metadata.drop_all(bind=ENGINE)
    Base.metadata.create_all(bind=ENGINE)
    with TestClient(app) as c:
        yield c
