# =============================================================================
# core/strategies.py - Strategy resolver
# =============================================================================

from dataclasses import replace
from typing import Dict, Optional, Sequence, Union

from core.models import BooleanRule, RuleScope, RuleSet, ScopedRule, Strategy

ON = BooleanRule(enabled=True)
EVERYONE = ScopedRule(enabled=True, scope=RuleScope.ALL)
SECURITY_ONLY = ScopedRule(enabled=True, scope=RuleScope.SECURITY_DEPARTMENTS)


SECURITY_RULES = RuleSet(
    upgrade_underprovisioned=EVERYONE,
    upgrade_basic_to_standard=EVERYONE,
    upgrade_to_e5=SECURITY_ONLY,
    upgrade_to_premium=SECURITY_ONLY,
    add_copilot_for_power_users=ON,
    usage_threshold=10,
)

COST_RULES = RuleSet(
    downgrade_e5=EVERYONE,
    downgrade_e3=EVERYONE,
    downgrade_premium=EVERYONE,
    downgrade_standard_to_basic=EVERYONE,
    remove_unused_addons=ON,
    remove_redundant_addons=ON,
    consolidate_overlap=ON,
    usage_threshold=30,
)

BALANCED_RULES = RuleSet(
    upgrade_underprovisioned=EVERYONE,
    downgrade_e5=EVERYONE,
    remove_redundant_addons=ON,
    consolidate_overlap=ON,
    usage_threshold=20,
)

# Starting point offered to the user before they customise anything
DEFAULT_CUSTOM_RULES = BALANCED_RULES

# Nothing enabled; what the Current baseline amounts to
NO_RULES = RuleSet()

STRATEGY_RULES: Dict[Strategy, RuleSet] = {
    Strategy.SECURITY: SECURITY_RULES,
    Strategy.COST: COST_RULES,
    Strategy.BALANCED: BALANCED_RULES,
}


def resolve_rule_set(strategy: Union[Strategy, str], custom_rules: Optional[RuleSet] = None) -> RuleSet:
    """Map a strategy to the rule set it runs with"""
    strategy = Strategy.parse(strategy)
    if strategy is Strategy.CUSTOM:
        return custom_rules if custom_rules is not None else DEFAULT_CUSTOM_RULES
    if strategy is Strategy.CURRENT:
        return NO_RULES
    return STRATEGY_RULES[strategy]


def custom_rule_base(usage_threshold: Optional[float] = None,
                     security_departments: Optional[Sequence[str]] = None) -> RuleSet:
    """Starting point a user-supplied rule configuration is layered over"""
    base = DEFAULT_CUSTOM_RULES
    if usage_threshold is not None:
        base = base.with_threshold(usage_threshold)
    if security_departments:
        base = replace(base, security_departments=tuple(security_departments))
    return base
