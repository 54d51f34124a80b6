from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Enum, Integer, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


RUN_KIND = Enum("RUN", "PROMOTION", name="allocation_run_kind", native_enum=False)

RUN_STATUS = Enum(
    "CREATED",
    "COMMITTED",
    "ABORTED",
    "ERROR",
    name="allocation_run_status",
    native_enum=False,
)


class AllocationRun(Base):
    __tablename__ = "allocation_runs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Engine-side run id (pass or promotion event), set once the engine commits.
    engine_run_id = Column(Text, nullable=True, index=True)
    kind = Column(RUN_KIND, nullable=False, default="RUN")
    status = Column(RUN_STATUS, nullable=False, default="CREATED")
    academic_year = Column(Text, nullable=False, default="")
    term = Column(Text, nullable=False, default="")
    requests_total = Column(Integer, nullable=False, default=0)
    parameters = Column(JSON, nullable=False, default=dict)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
