"""
Smart Farming - Subscription plans and feature gating.
Static plan -> feature table, pure access checks (unknown plan or feature means no access),
an immutable per-session subscription context, and payload redaction for locked data.
"""
import copy
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict


class SubscriptionPlan(str, Enum):
    FREE = "free"
    PRO = "pro"
    PREMIUM = "premium"


PLAN_ORDER = [SubscriptionPlan.FREE, SubscriptionPlan.PRO, SubscriptionPlan.PREMIUM]

FEATURE_KEYS: FrozenSet[str] = frozenset({
    "dashboard-basic",
    "dashboard-health",
    "dashboard-yield",
    "sensors-basic",
    "sensors-advanced",
    "weather",
    "irrigation-basic",
    "fertilizer-basic",
    "crop-health",
    "reports",
    "predictions",
    "export-csv",
    "export-all",
    "multi-farm",
    "api-access",
})

_FREE = frozenset({"dashboard-basic", "sensors-basic", "weather", "irrigation-basic", "fertilizer-basic"})
# Pro adds crop health but not the predicted yield
_PRO = _FREE | {"dashboard-health", "sensors-advanced", "crop-health", "export-csv"}
# Premium swaps the CSV export for the complete export
_PREMIUM = (_PRO - {"export-csv"}) | {
    "dashboard-yield", "reports", "predictions", "export-all", "multi-farm", "api-access",
}

PLAN_FEATURES: Dict[SubscriptionPlan, FrozenSet[str]] = {
    SubscriptionPlan.FREE: _FREE,
    SubscriptionPlan.PRO: _PRO,
    SubscriptionPlan.PREMIUM: _PREMIUM,
}

PLAN_DETAILS: Dict[SubscriptionPlan, Dict[str, Any]] = {
    SubscriptionPlan.FREE: {"name": "Free", "badge": "FREE PLAN", "price_monthly": 0, "currency": "INR"},
    SubscriptionPlan.PRO: {"name": "Pro", "badge": "PRO PLAN", "price_monthly": 99, "currency": "INR"},
    SubscriptionPlan.PREMIUM: {"name": "Premium", "badge": "PREMIUM PLAN", "price_monthly": 199, "currency": "INR"},
}

# Composite gates: any of the listed features unlocks; otherwise suggest the plan
PREMIUM_GATES: Dict[str, Tuple[FrozenSet[str], SubscriptionPlan]] = {
    "export": (frozenset({"export-csv", "export-all"}), SubscriptionPlan.PRO),
    "crop-health": (frozenset({"crop-health"}), SubscriptionPlan.PRO),
    "reports": (frozenset({"reports"}), SubscriptionPlan.PREMIUM),
    "predictions": (frozenset({"reports"}), SubscriptionPlan.PREMIUM),
}

# Payload sections and the feature that unlocks them
SECTION_FEATURES = {
    "cropHealth": "dashboard-health",
    "yieldPrediction": "dashboard-yield",
}
ADVANCED_SENSOR_FIELDS = {
    "soil": ("ph", "conductivity"),
    "weather": ("humidity",),
    "historical": ("humidity",),
}


def parse_plan(plan: Union[str, SubscriptionPlan, None]) -> Optional[SubscriptionPlan]:
    """Plan enum for a plan name, None when unknown."""
    if isinstance(plan, SubscriptionPlan):
        return plan
    if not isinstance(plan, str):
        return None
    try:
        return SubscriptionPlan(plan.strip().lower())
    except ValueError:
        return None


def features_for(plan: Union[str, SubscriptionPlan, None]) -> FrozenSet[str]:
    parsed = parse_plan(plan)
    return PLAN_FEATURES[parsed] if parsed else frozenset()


def has_access(plan: Union[str, SubscriptionPlan, None], feature: str) -> bool:
    """True iff the feature is in the plan's table. Unknown plans and features fail closed."""
    return feature in features_for(plan)


def required_plan(feature: str) -> Optional[SubscriptionPlan]:
    """Lowest plan that includes the feature, None for unknown features."""
    for plan in PLAN_ORDER:
        if feature in PLAN_FEATURES[plan]:
            return plan
    return None


def check_premium_feature(plan: Union[str, SubscriptionPlan, None], feature: str) -> Tuple[bool, Optional[SubscriptionPlan]]:
    """
    Gate a UI capability. Returns (allowed, plan to suggest when not allowed).
    Capabilities without a composite gate fall back to the plain feature table.
    """
    if feature in PREMIUM_GATES:
        unlocking, suggestion = PREMIUM_GATES[feature]
        if any(has_access(plan, key) for key in unlocking):
            return True, None
        return False, suggestion
    if has_access(plan, feature):
        return True, None
    return False, required_plan(feature)


class SubscriptionContext(BaseModel):
    """Active plan for one session. Immutable: a plan change yields a new context."""
    model_config = ConfigDict(frozen=True)

    plan: SubscriptionPlan = SubscriptionPlan.FREE
    session_id: Optional[str] = None

    @property
    def features(self) -> FrozenSet[str]:
        return PLAN_FEATURES[self.plan]

    def has_access(self, feature: str) -> bool:
        return has_access(self.plan, feature)


def subscribe_to_plan(context: SubscriptionContext, plan: Union[str, SubscriptionPlan]) -> SubscriptionContext:
    """Switch to a new plan. Raises ValueError for an unknown plan; the old context is untouched."""
    parsed = parse_plan(plan)
    if parsed is None:
        raise ValueError(f"Unknown subscription plan: {plan!r}")
    return context.model_copy(update={"plan": parsed})


def redact_payload(payload: Dict[str, Any], plan: Union[str, SubscriptionPlan, None]) -> Dict[str, Any]:
    """Copy of a dashboard payload with the sections and fields the plan cannot see removed."""
    redacted = copy.deepcopy(payload)
    for section, feature in SECTION_FEATURES.items():
        if not has_access(plan, feature):
            redacted.pop(section, None)
    if not has_access(plan, "sensors-advanced"):
        for section, fields in ADVANCED_SENSOR_FIELDS.items():
            values = redacted.get(section)
            if isinstance(values, dict):
                for field in fields:
                    values.pop(field, None)
    return redacted


def plan_catalogue() -> Dict[str, Dict[str, Any]]:
    return {
        plan.value: {**PLAN_DETAILS[plan], "features": sorted(PLAN_FEATURES[plan])}
        for plan in PLAN_ORDER
    }
