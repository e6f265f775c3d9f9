# =============================================================================
# rules/downgrades.py - Downgrade rules
# =============================================================================

from core import catalog as lic
from core.models import ReasonKind
from rules.base_rule import TierChangeRule, RuleContext, department_set, format_delta

# Departments that keep their tier regardless of usage
DOWNGRADE_EXEMPT_DEPARTMENTS = department_set("Security", "Legal", "Compliance")

# Capabilities given up on each downgrade path
DOWNGRADE_LOSSES = {
    (lic.M365_E5, lic.M365_E3): "Defender for Endpoint P2, Entra ID P2 and eDiscovery Premium",
    (lic.O365_E5, lic.O365_E3): "Defender for Office 365 P2, eDiscovery Premium and Power BI Pro",
    (lic.M365_E3, lic.O365_E1): "desktop Office apps and Intune device management",
    (lic.O365_E3, lic.O365_E1): "desktop Office apps and the 100 GB mailbox",
    (lic.BUSINESS_PREMIUM, lic.BUSINESS_STANDARD): "Defender for Business and Intune",
    (lic.BUSINESS_STANDARD, lic.BUSINESS_BASIC): "desktop Office apps",
}


class UnderutilizedDowngrade(TierChangeRule):
    """Tier drop for users whose mailbox usage sits below the rule threshold"""

    kind = ReasonKind.DOWNGRADE

    def threshold(self, context: RuleContext) -> float:
        config = context.rule_set.rule(self.name)
        return config.effective_threshold(context.rule_set.usage_threshold)

    def qualifies(self, context: RuleContext) -> bool:
        if context.in_departments(DOWNGRADE_EXEMPT_DEPARTMENTS):
            return False
        ratio = context.usage_ratio
        # -1 means no mailbox data, never underutilized
        return 0 <= ratio < self.threshold(context)

    def describe(self, old: str, new: str, context: RuleContext) -> str:
        return (
            f"Downgrade {old} to {new}: mailbox usage at {context.usage_ratio:.0f}% is below "
            f"the {self.threshold(context):.0f}% threshold; {DOWNGRADE_LOSSES[(old, new)]} "
            f"unused ({format_delta(context.price_delta(old, new))})"
        )


class DowngradeE5Rule(UnderutilizedDowngrade):
    """Step 5: top-tier suites to the mid tier"""

    name = 'downgrade_e5'
    tiers = {
        lic.M365_E5: lic.M365_E3,
        lic.O365_E5: lic.O365_E3,
    }


class DowngradeE3Rule(UnderutilizedDowngrade):
    """Step 6: mid-tier suites to the entry tier"""

    name = 'downgrade_e3'
    tiers = {
        lic.M365_E3: lic.O365_E1,
        lic.O365_E3: lic.O365_E1,
    }


class DowngradePremiumRule(UnderutilizedDowngrade):
    """Step 7a: Business Premium to Business Standard"""

    name = 'downgrade_premium'
    tiers = {lic.BUSINESS_PREMIUM: lic.BUSINESS_STANDARD}


class DowngradeStandardToBasicRule(UnderutilizedDowngrade):
    """Step 7b: Business Standard to Business Basic"""

    name = 'downgrade_standard_to_basic'
    tiers = {lic.BUSINESS_STANDARD: lic.BUSINESS_BASIC}
