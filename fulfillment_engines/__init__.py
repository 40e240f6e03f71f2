"""
Module: fulfillment_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: batch
    allocation, three-way matching and approval rule evaluation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import fulfillment_kernel exceptions, domain types and logging.
    MUST NOT import fulfillment_services, fulfillment_modules or sqlalchemy.

Invariants enforced:
    - Engines NEVER read the clock; business dates are parameters.
    - Monetary arithmetic is Decimal only.
    - Every public engine call emits FULFILLMENT_ENGINE_TRACE.
"""

from fulfillment_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationPlan,
    AllocationPolicy,
    AllocationRequest,
    BatchCandidate,
    fefo_sort_key,
)
from fulfillment_engines.approval import (
    ApprovalDecisionStatus,
    ApprovalOutcome,
    ApprovalRuleSpec,
    evaluate_approval_status,
    select_applicable_rules,
)
from fulfillment_engines.matching import (
    MatchTolerance,
    ThreeWayMatchEvaluation,
    ThreeWayMatchStatus,
    evaluate_three_way_match,
)

__all__ = [
    "AllocationEngine",
    "AllocationLine",
    "AllocationPlan",
    "AllocationPolicy",
    "AllocationRequest",
    "BatchCandidate",
    "fefo_sort_key",
    "ApprovalDecisionStatus",
    "ApprovalOutcome",
    "ApprovalRuleSpec",
    "evaluate_approval_status",
    "select_applicable_rules",
    "MatchTolerance",
    "ThreeWayMatchEvaluation",
    "ThreeWayMatchStatus",
    "evaluate_three_way_match",
]
