from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from allocation.engine import AllocationEngine
from allocation.errors import AllocationAborted, ConsistencyViolation
from core.config import settings
from core.logging import setup_logging
from schemas.allocation import RunAllocationRequest
from services.snapshots import (
    build_config,
    build_courses,
    build_policy,
    build_requests,
    course_out,
    decision_out,
    issue_out,
)


logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run one allocation pass over a JSON snapshot (same body as POST /api/allocation/runs) without a database"
    )
    parser.add_argument("snapshot", type=str, help="Path to the snapshot .json file")
    parser.add_argument("-o", "--output", type=str, default=None, help="Write the result here instead of stdout")
    args = parser.parse_args()

    setup_logging(environment=settings.environment)

    raw = Path(args.snapshot).read_text(encoding="utf-8")
    try:
        payload = RunAllocationRequest.model_validate_json(raw)
    except ValidationError as exc:
        print(exc, file=sys.stderr)
        return 2

    engine = AllocationEngine(build_courses(payload.courses), build_policy(payload.policy))
    try:
        result = engine.run(build_requests(payload.requests), build_config(payload.config))
    except AllocationAborted as exc:
        logger.error("Pass aborted: %s", exc)
        out = {"status": "ABORTED", "message": str(exc), "issues": [issue_out(i).model_dump() for i in exc.issues]}
        code = 1
    except ConsistencyViolation as exc:
        logger.error("Consistency violation %s: %s", exc.code, exc)
        out = {"status": "ERROR", "type": exc.code, "message": str(exc), "details": exc.details}
        code = 1
    else:
        out = {
            "status": result.status,
            "run_id": result.run_id,
            "summary": result.summary(),
            "decisions": [decision_out(d).model_dump() for d in result.decisions],
            "issues": [issue_out(i).model_dump() for i in result.issues],
            "courses": [course_out(s).model_dump() for _cid, s in sorted(result.courses.items())],
        }
        code = 0

    text = json.dumps(out, indent=2, default=str)
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return code


if __name__ == "__main__":
    raise SystemExit(main())
