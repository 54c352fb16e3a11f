"""Scheduling package - task assignment, conflict handling and timeline analysis.

Main entry points:
- SchedulingEngine: Facade over one task/team snapshot
- auto_assign: Bulk assignment in a configurable task order
- optimize_schedule: Iterative conflict resolution
- calculate_critical_path / analyze_delay_impact: Timeline analysis

Configuration:
- SchedulingConfig: Scoring weights, conflict policy and limits
"""

# Assignment
from .assignment import AutoAssigner, auto_assign, order_tasks

# Configuration
from .config import (
    AlgorithmType,
    ConfigStore,
    ConflictResolutionMode,
    ResolutionStrategy,
    SchedulingConfig,
    SchedulingWeights,
)

# Conflicts
from .conflicts import ConflictContext, detect_conflicts, simulate_assignment_conflicts

# Core dataclasses
from .core import (
    AssignedTask,
    AssignmentRecommendation,
    AutoAssignMetrics,
    AutoAssignRequest,
    AutoAssignResult,
    ConflictKind,
    ConflictResolution,
    CriticalPathResult,
    DelayedTask,
    DependencyIssue,
    DependencyLink,
    DependencyValidationResult,
    ImpactAnalysis,
    NewAssignment,
    OperationResult,
    OptimizationMetrics,
    ResourceAllocationMetrics,
    ScheduleConflict,
    ScheduledTaskHours,
    ScheduleOptimization,
    SkippedTask,
    TaskNode,
    TeamAvailabilityDay,
    TeamCapacity,
    Workload,
)

# Timeline analysis
from .critical_path import (
    analyze_delay_impact,
    calculate_critical_path,
    get_available_tasks,
    get_blocking_tasks,
)
from .duration import estimate_task_duration, estimate_task_hours

# High-level facade
from .engine import SchedulingEngine
from .graph import (
    DependencyGraph,
    build_dependency_graph,
    get_dependency_chain,
    validate_dependencies,
    would_create_cycle,
)
from .optimizer import ScheduleOptimizer, optimize_schedule

# Recommendations
from .recommender import best_assignee, recommend
from .resolution import (
    AddResourcesPlan,
    ExtendDeadlinePlan,
    ManualPlan,
    ReassignPlan,
    ReschedulePlan,
    ResolutionPlan,
    apply_plan,
    resolve_conflict,
    select_plan,
)
from .state import AssignmentState

__all__ = [
    "AddResourcesPlan",
    "AlgorithmType",
    "AssignedTask",
    "AssignmentRecommendation",
    "AssignmentState",
    "AutoAssignMetrics",
    "AutoAssignRequest",
    "AutoAssignResult",
    "AutoAssigner",
    "ConfigStore",
    "ConflictContext",
    "ConflictKind",
    "ConflictResolution",
    "ConflictResolutionMode",
    "CriticalPathResult",
    "DelayedTask",
    "DependencyGraph",
    "DependencyIssue",
    "DependencyLink",
    "DependencyValidationResult",
    "ExtendDeadlinePlan",
    "ImpactAnalysis",
    "ManualPlan",
    "NewAssignment",
    "OperationResult",
    "OptimizationMetrics",
    "ReassignPlan",
    "ReschedulePlan",
    "ResolutionPlan",
    "ResolutionStrategy",
    "ResourceAllocationMetrics",
    "ScheduleConflict",
    "ScheduleOptimization",
    "ScheduleOptimizer",
    "ScheduledTaskHours",
    "SchedulingConfig",
    "SchedulingEngine",
    "SchedulingWeights",
    "SkippedTask",
    "TaskNode",
    "TeamAvailabilityDay",
    "TeamCapacity",
    "Workload",
    "analyze_delay_impact",
    "apply_plan",
    "auto_assign",
    "best_assignee",
    "build_dependency_graph",
    "calculate_critical_path",
    "detect_conflicts",
    "estimate_task_duration",
    "estimate_task_hours",
    "get_available_tasks",
    "get_blocking_tasks",
    "get_dependency_chain",
    "optimize_schedule",
    "order_tasks",
    "recommend",
    "resolve_conflict",
    "select_plan",
    "simulate_assignment_conflicts",
    "validate_dependencies",
    "would_create_cycle",
]
