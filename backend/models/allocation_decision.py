from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Text, UniqueConstraint, Uuid
from sqlalchemy.sql import func

from models.base import Base


DECISION_STATUS = Enum("ASSIGNED", "WAITLISTED", "REJECTED", name="allocation_decision_status", native_enum=False)


class AllocationDecisionRecord(Base):
    __tablename__ = "allocation_decisions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("allocation_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    # Position in the run's decision sequence; decisions are replayed in this order.
    position = Column(Integer, nullable=False)
    student_id = Column(Text, nullable=False, index=True)
    course_id = Column(Text, nullable=False, index=True)
    status = Column(DECISION_STATUS, nullable=False)
    reason = Column(Text, nullable=True)
    rank = Column(Integer, nullable=True)
    sequence = Column(Integer, nullable=True)
    waitlist_position = Column(Integer, nullable=True)
    detail = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("run_id", "position", name="uq_allocation_decisions_run_position"),
    )
