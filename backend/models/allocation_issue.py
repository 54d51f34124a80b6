from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, Text, Uuid
from sqlalchemy.sql import func

from models.base import Base


ISSUE_SEVERITY = Enum("INFO", "WARN", "ERROR", name="allocation_issue_severity", native_enum=False)


class AllocationIssueRecord(Base):
    __tablename__ = "allocation_issues"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    run_id = Column(Uuid(as_uuid=True), ForeignKey("allocation_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    severity = Column(ISSUE_SEVERITY, nullable=False, default="ERROR")
    issue_type = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    student_id = Column(Text, nullable=True)
    course_id = Column(Text, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
