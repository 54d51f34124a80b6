from allocation.engine import AllocationEngine, DecisionSink, allocate
from allocation.errors import (
	AllocationAborted,
	AllocationError,
	ConsistencyViolation,
	NotEnrolledError,
	UnknownCourseError,
)
from allocation.ordering import OrderingResult, order_requests
from allocation.policy import AllocationPolicy, exclusive_groups, fixed_credit_limit
from allocation.state import CourseState, check_invariants
from allocation.types import (
	AllocationConfig,
	AllocationDecision,
	AllocationResult,
	CourseSlot,
	DecisionStatus,
	PromotionEvent,
	PromotionResult,
	RejectionReason,
	StudentRequest,
	ValidationIssue,
	WaitlistEntry,
)

__all__ = [
	"AllocationAborted",
	"AllocationConfig",
	"AllocationDecision",
	"AllocationEngine",
	"AllocationError",
	"AllocationPolicy",
	"AllocationResult",
	"ConsistencyViolation",
	"CourseSlot",
	"CourseState",
	"DecisionSink",
	"DecisionStatus",
	"NotEnrolledError",
	"OrderingResult",
	"PromotionEvent",
	"PromotionResult",
	"RejectionReason",
	"StudentRequest",
	"UnknownCourseError",
	"ValidationIssue",
	"WaitlistEntry",
	"allocate",
	"check_invariants",
	"exclusive_groups",
	"fixed_credit_limit",
	"order_requests",
]
