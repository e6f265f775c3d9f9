# =============================================================================
# rules/upgrades.py - Upgrade rules
# =============================================================================

from core import catalog as lic
from core.models import ReasonKind
from rules.base_rule import (
    BaseRule, TierChangeRule, RuleContext, RuleState,
    UPGRADE_TRIGGER_PERCENT, POWER_USER_PERCENT, department_set, format_delta,
)


# Capabilities each upgrade path closes
UPGRADE_GAINS = {
    (lic.O365_E1, lic.M365_E3): "desktop Office apps, Intune device management, "
                                "Entra ID P1 conditional access and a 100 GB mailbox",
    (lic.M365_F1, lic.M365_F3): "an Exchange mailbox and Office web apps for frontline work",
    (lic.BUSINESS_BASIC, lic.BUSINESS_STANDARD): "desktop Office apps, webinars and "
                                                 "attendee registration",
    (lic.M365_E3, lic.M365_E5): "Defender for Endpoint P2, Defender for Office 365 P2, "
                                "Entra ID P2 risk-based access, eDiscovery Premium and "
                                "Teams Phone System",
    (lic.O365_E3, lic.O365_E5): "Defender for Office 365 P2 threat investigation, "
                                "eDiscovery Premium and Power BI Pro",
    (lic.BUSINESS_STANDARD, lic.BUSINESS_PREMIUM): "Defender for Business, Intune device "
                                                   "management, Entra ID P1 conditional "
                                                   "access and Purview information protection",
}


class UsageTriggeredUpgrade(TierChangeRule):
    """Tier bump for users whose mailbox usage shows they outgrew their suite"""

    kind = ReasonKind.UPGRADE

    def qualifies(self, context: RuleContext) -> bool:
        return context.usage_ratio > UPGRADE_TRIGGER_PERCENT

    def describe(self, old: str, new: str, context: RuleContext) -> str:
        return (
            f"Upgrade {old} to {new}: mailbox usage at {context.usage_ratio:.0f}% exceeds "
            f"the {UPGRADE_TRIGGER_PERCENT}% threshold; gains {UPGRADE_GAINS[(old, new)]} "
            f"({format_delta(context.price_delta(old, new))})"
        )


class UpgradeUnderprovisionedRule(UsageTriggeredUpgrade):
    """Step 1: entry-tier suites to the mid tier"""

    name = 'upgrade_underprovisioned'
    tiers = {
        lic.O365_E1: lic.M365_E3,
        lic.M365_F1: lic.M365_F3,
    }


class UpgradeBasicToStandardRule(UsageTriggeredUpgrade):
    """Step 2: Business Basic to Business Standard"""

    name = 'upgrade_basic_to_standard'
    tiers = {lic.BUSINESS_BASIC: lic.BUSINESS_STANDARD}


class ScopedUpgrade(TierChangeRule):
    """Tier bump driven purely by department scope"""

    kind = ReasonKind.UPGRADE

    def qualifies(self, context: RuleContext) -> bool:
        return True

    def describe(self, old: str, new: str, context: RuleContext) -> str:
        department = context.user.department or "unassigned"
        return (
            f"Upgrade {old} to {new} for {department}: adds "
            f"{UPGRADE_GAINS[(old, new)]} ({format_delta(context.price_delta(old, new))})"
        )


class UpgradeToE5Rule(ScopedUpgrade):
    """Step 3: mid-tier enterprise suites to the top security tier"""

    name = 'upgrade_to_e5'
    tiers = {
        lic.M365_E3: lic.M365_E5,
        lic.O365_E3: lic.O365_E5,
    }


class UpgradeToPremiumRule(ScopedUpgrade):
    """Step 4: Business Standard to Business Premium"""

    name = 'upgrade_to_premium'
    tiers = {lic.BUSINESS_STANDARD: lic.BUSINESS_PREMIUM}


COPILOT_DEPARTMENTS = department_set("Engineering", "IT", "Design", "Analytics")
ENGINEERING = department_set("Engineering")
AI_ASSISTANTS = (lic.M365_COPILOT, lic.GITHUB_COPILOT)


class AddCopilotRule(BaseRule):
    """Step 11: AI assistant for heavy users in technical departments"""

    name = 'add_copilot_for_power_users'
    kind = ReasonKind.UPGRADE

    def transform(self, state: RuleState, context: RuleContext) -> RuleState:
        if not context.in_departments(COPILOT_DEPARTMENTS):
            return state
        if context.usage_ratio <= POWER_USER_PERCENT:
            return state
        if state.has_any(AI_ASSISTANTS):
            return state

        if context.in_departments(ENGINEERING):
            assistant, purpose = lic.GITHUB_COPILOT, "AI pair programming in the IDE"
        else:
            assistant, purpose = lic.M365_COPILOT, "AI drafting and analysis across Office apps"

        return state.adding(assistant).noting(self.reason(
            f"Add {assistant}: power user at {context.usage_ratio:.0f}% mailbox usage in "
            f"{context.user.department} gains {purpose} "
            f"({format_delta(context.price(assistant))})"
        ))
