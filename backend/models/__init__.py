from models.allocation_decision import AllocationDecisionRecord
from models.allocation_issue import AllocationIssueRecord
from models.allocation_run import AllocationRun
from models.base import Base

__all__ = [
	"AllocationDecisionRecord",
	"AllocationIssueRecord",
	"AllocationRun",
	"Base",
]
