# =============================================================================
# rules/cleanup.py - Add-on cleanup and consolidation rules
# =============================================================================

from typing import Dict, FrozenSet, Optional

from core import catalog as lic
from core.models import ReasonKind
from rules.base_rule import BaseRule, RuleContext, RuleState, department_set, format_delta

VISIO_DEPARTMENTS = department_set("Design", "Engineering", "PMO", "Architecture")
PROJECT_DEPARTMENTS = department_set("PMO", "IT", "Engineering")
BI_PREMIUM_DEPARTMENTS = department_set("Analytics", "Finance", "Data")

PROJECT_LICENSES = (lic.PROJECT_P5, lic.PROJECT_P3, lic.PROJECT_P1)


class RemoveUnusedAddonsRule(BaseRule):
    """Step 8: strip or shrink add-ons the user's department has no use for"""

    name = 'remove_unused_addons'
    kind = ReasonKind.CLEANUP

    def low_activity(self, context: RuleContext) -> bool:
        return 0 <= context.usage_ratio < context.rule_set.usage_threshold

    def transform(self, state: RuleState, context: RuleContext) -> RuleState:
        department = context.user.department or "unassigned"

        if not context.in_departments(VISIO_DEPARTMENTS):
            for visio in (lic.VISIO_P2, lic.VISIO_P1):
                if state.has(visio):
                    state = state.without(visio).noting(self.reason(
                        f"Remove {visio}: diagramming is not part of {department} workflows "
                        f"({format_delta(-context.price(visio))})"
                    ))

        if self.low_activity(context):
            if context.in_departments(PROJECT_DEPARTMENTS):
                if state.has(lic.PROJECT_P5):
                    state = self._shrink(state, context, lic.PROJECT_P5, lic.PROJECT_P3)
            else:
                for project in PROJECT_LICENSES:
                    if state.has(project):
                        state = state.without(project).noting(self.reason(
                            f"Remove {project}: low activity ({context.usage_ratio:.0f}%) "
                            f"and {department} does not run projects "
                            f"({format_delta(-context.price(project))})"
                        ))

        if state.has(lic.POWER_BI_PPU) and not context.in_departments(BI_PREMIUM_DEPARTMENTS):
            state = self._shrink(state, context, lic.POWER_BI_PPU, lic.POWER_BI_PRO)

        return state

    def _shrink(self, state: RuleState, context: RuleContext, old: str, new: str) -> RuleState:
        if state.has(new):
            return state.without(old).noting(self.reason(
                f"Remove {old}: {new} already assigned ({format_delta(-context.price(old))})"
            ))
        return state.without(old).adding(new).noting(self.reason(
            f"Downsize {old} to {new}: premium tier features unused in "
            f"{context.user.department or 'unassigned'} "
            f"({format_delta(context.price_delta(old, new))})"
        ))


# Add-ons already delivered by each suite
SUITE_INCLUDES: Dict[str, FrozenSet[str]] = {
    lic.M365_E5: frozenset({
        lic.DEFENDER_ENDPOINT_P2, lic.DEFENDER_ENDPOINT_P1, lic.DEFENDER_BUSINESS,
        lic.DEFENDER_O365_P2, lic.DEFENDER_O365_P1, lic.DEFENDER_IDENTITY,
        lic.DEFENDER_CLOUD_APPS, lic.EMS_E5, lic.EMS_E3, lic.ENTRA_P2, lic.ENTRA_P1,
        lic.INTUNE_P1, lic.AIP_P2, lic.AIP_P1, lic.E5_SECURITY, lic.E5_COMPLIANCE,
        lic.WINDOWS_E5, lic.WINDOWS_E3, lic.PHONE_SYSTEM, lic.AUDIO_CONFERENCING,
        lic.POWER_BI_PRO,
    }),
    lic.M365_E3: frozenset({
        lic.DEFENDER_ENDPOINT_P1, lic.EMS_E3, lic.ENTRA_P1, lic.INTUNE_P1, lic.AIP_P1,
        lic.WINDOWS_E3,
    }),
    lic.O365_E5: frozenset({
        lic.DEFENDER_O365_P2, lic.DEFENDER_O365_P1, lic.PHONE_SYSTEM,
        lic.AUDIO_CONFERENCING, lic.POWER_BI_PRO,
    }),
    lic.BUSINESS_PREMIUM: frozenset({
        lic.DEFENDER_BUSINESS, lic.DEFENDER_O365_P1, lic.INTUNE_P1, lic.ENTRA_P1, lic.AIP_P1,
    }),
}


class RemoveRedundantAddonsRule(BaseRule):
    """Step 9: strip add-ons whose capability a held suite already includes"""

    name = 'remove_redundant_addons'
    kind = ReasonKind.REDUNDANCY

    def covering_suite(self, state: RuleState, addon: str) -> Optional[str]:
        for suite, included in SUITE_INCLUDES.items():
            if state.has(suite) and addon in included:
                return suite
        return None

    def transform(self, state: RuleState, context: RuleContext) -> RuleState:
        for addon in state.licenses:
            suite = self.covering_suite(state, addon)
            if suite:
                state = state.without(addon).noting(self.reason(
                    f"Remove {addon}: capability already included in {suite} "
                    f"({format_delta(-context.price(addon))})"
                ))
        return state


# Lower suites made redundant by a higher one held alongside
SUITE_SUPERSEDES: Dict[str, FrozenSet[str]] = {
    lic.M365_E5: frozenset({lic.M365_E3, lic.O365_E5, lic.O365_E3, lic.O365_E1,
                            lic.APPS_FOR_ENTERPRISE}),
    lic.M365_E3: frozenset({lic.O365_E3, lic.O365_E1, lic.APPS_FOR_ENTERPRISE}),
    lic.O365_E5: frozenset({lic.O365_E3, lic.O365_E1}),
    lic.O365_E3: frozenset({lic.O365_E1}),
    lic.BUSINESS_PREMIUM: frozenset({lic.BUSINESS_STANDARD, lic.BUSINESS_BASIC,
                                     lic.APPS_FOR_BUSINESS}),
    lic.BUSINESS_STANDARD: frozenset({lic.BUSINESS_BASIC, lic.APPS_FOR_BUSINESS}),
    lic.M365_F3: frozenset({lic.M365_F1, lic.O365_F3}),
}

# Suites that ship an Exchange mailbox and SharePoint/OneDrive
MAILBOX_SUITES = frozenset({
    lic.M365_E5, lic.M365_E3, lic.O365_E5, lic.O365_E3, lic.O365_E1, lic.M365_F3,
    lic.O365_F3, lic.BUSINESS_BASIC, lic.BUSINESS_STANDARD, lic.BUSINESS_PREMIUM,
})

STANDALONE_COLLABORATION = (
    lic.EXCHANGE_P1, lic.EXCHANGE_P2, lic.EXCHANGE_KIOSK, lic.EXCHANGE_ESSENTIALS,
    lic.SHAREPOINT_P1, lic.SHAREPOINT_P2, lic.ONEDRIVE_P1, lic.ONEDRIVE_P2,
)

FREE_AND_TRIAL = (
    lic.TEAMS_EXPLORATORY, lic.TEAMS_FREE, lic.TEAMS_TRIAL, lic.FLOW_FREE,
    lic.POWERAPPS_TRIAL, lic.PVA_TRIAL, lic.POWER_BI_FREE,
)


class ConsolidateOverlapRule(BaseRule):
    """Step 10: collapse overlapping suites, standalone mail and trial grants"""

    name = 'consolidate_overlap'
    kind = ReasonKind.CLEANUP

    def transform(self, state: RuleState, context: RuleContext) -> RuleState:
        for suite, superseded in SUITE_SUPERSEDES.items():
            if not state.has(suite):
                continue
            for lower in sorted(superseded):
                if state.has(lower):
                    state = state.without(lower).noting(self.reason(
                        f"Remove {lower}: overlaps with {suite} "
                        f"({format_delta(-context.price(lower))})"
                    ))

        mailbox_suite = next((s for s in state.licenses if s in MAILBOX_SUITES), None)
        if mailbox_suite:
            for standalone in STANDALONE_COLLABORATION:
                if state.has(standalone):
                    state = state.without(standalone).noting(self.reason(
                        f"Remove {standalone}: mail and file storage already provided by "
                        f"{mailbox_suite} ({format_delta(-context.price(standalone))})"
                    ))

        paid_suite = next((s for s in state.licenses
                           if context.catalog.resolve(s).is_suite and context.price(s) > 0), None)
        if paid_suite:
            for grant in FREE_AND_TRIAL:
                if state.has(grant):
                    state = state.without(grant).noting(self.reason(
                        f"Remove {grant}: free or trial grant superseded by {paid_suite}"
                    ))
        return state
