"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from carpool.domain.errors import (
    CarpoolError,
    ConflictError,
    NotFoundError,
    SchedulingRunError,
    ValidationError,
)
from carpool.domain.models import (
    WEEKDAYS,
    AlgorithmStep,
    Assignment,
    DayPreference,
    EmergencyContact,
    FairnessRecord,
    Family,
    LedgerDelta,
    MakeupProposal,
    MakeupStatus,
    MakeupType,
    PreferenceLevel,
    PreferenceStatus,
    PreferredRole,
    ResolverResult,
    ScheduleStatus,
    SchedulingPolicy,
    SchedulingRun,
    TravelException,
    UnassignedSlot,
    Weekday,
    WeeklyPreferences,
    WeeklySchedule,
)
from carpool.domain.ports import (
    EventPublisher,
    FairnessRepository,
    MakeupRepository,
    PreferenceRepository,
    RosterProvider,
    ScheduleRepository,
)

__all__ = [
    # Models
    "WEEKDAYS",
    "Weekday",
    "PreferenceLevel",
    "PreferredRole",
    "ScheduleStatus",
    "MakeupType",
    "MakeupStatus",
    "Family",
    "DayPreference",
    "EmergencyContact",
    "WeeklyPreferences",
    "WeeklySchedule",
    "Assignment",
    "UnassignedSlot",
    "AlgorithmStep",
    "ResolverResult",
    "FairnessRecord",
    "LedgerDelta",
    "SchedulingRun",
    "TravelException",
    "MakeupProposal",
    "SchedulingPolicy",
    "PreferenceStatus",
    # Errors
    "CarpoolError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "SchedulingRunError",
    # Ports
    "RosterProvider",
    "ScheduleRepository",
    "PreferenceRepository",
    "FairnessRepository",
    "MakeupRepository",
    "EventPublisher",
]
