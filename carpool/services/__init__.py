"""Services layer - ビジネスロジック"""

from carpool.services.fairness_ledger import FairnessLedger, fairness_sort_key
from carpool.services.makeup_manager import MakeupManager
from carpool.services.preference_store import PreferenceStore, validate_week
from carpool.services.resolver import ConstraintResolver
from carpool.services.scheduler import GenerationOutcome, WeeklyScheduler

__all__ = [
    "PreferenceStore",
    "validate_week",
    "ConstraintResolver",
    "FairnessLedger",
    "fairness_sort_key",
    "MakeupManager",
    "WeeklyScheduler",
    "GenerationOutcome",
]
