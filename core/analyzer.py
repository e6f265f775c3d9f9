# =============================================================================
# core/analyzer.py - Per-user license analyzer
# =============================================================================

from functools import reduce
from typing import List, Optional, Sequence
import logging

from core.catalog import LicenseCatalog, DEFAULT_CATALOG
from core.models import UserRecord, RuleSet, AnalysisResult
from rules.base_rule import BaseRule, RuleContext, RuleState
from rules.upgrades import (
    UpgradeUnderprovisionedRule, UpgradeBasicToStandardRule, UpgradeToE5Rule,
    UpgradeToPremiumRule, AddCopilotRule,
)
from rules.downgrades import (
    DowngradeE5Rule, DowngradeE3Rule, DowngradePremiumRule, DowngradeStandardToBasicRule,
)
from rules.cleanup import RemoveUnusedAddonsRule, RemoveRedundantAddonsRule, ConsolidateOverlapRule


def default_rules() -> List[BaseRule]:
    """Rule steps in application order"""
    return [
        UpgradeUnderprovisionedRule(),
        UpgradeBasicToStandardRule(),
        UpgradeToE5Rule(),
        UpgradeToPremiumRule(),
        DowngradeE5Rule(),
        DowngradeE3Rule(),
        DowngradePremiumRule(),
        DowngradeStandardToBasicRule(),
        RemoveUnusedAddonsRule(),
        RemoveRedundantAddonsRule(),
        ConsolidateOverlapRule(),
        AddCopilotRule(),
    ]


class LicenseAnalyzer:
    """Applies a rule set to one user at a time"""

    def __init__(self, catalog: Optional[LicenseCatalog] = None,
                 rules: Optional[Sequence[BaseRule]] = None):
        self.catalog = catalog or DEFAULT_CATALOG
        self.rules = list(rules) if rules is not None else default_rules()
        self.logger = logging.getLogger(self.__class__.__name__)

    def analyze(self, user: UserRecord, rule_set: RuleSet) -> AnalysisResult:
        """
        Run every rule step over the user's licenses.

        Each step sees the license set produced by the steps before it. The
        input record is never modified.

        Args:
            user: Record to analyze
            rule_set: Resolved rule configuration

        Returns:
            AnalysisResult with normalized licenses, recomputed cost and the
            justifications in the order the rules fired
        """
        context = RuleContext(user=user, rule_set=rule_set, catalog=self.catalog)
        initial = RuleState(licenses=self.catalog.normalize(user.licenses))

        final = reduce(lambda state, rule: rule.apply(state, context), self.rules, initial)

        licenses = self.catalog.normalize(final.licenses)
        result = AnalysisResult(
            licenses=licenses,
            cost=self.catalog.compute_cost(licenses),
            reasons=final.reasons,
        )
        if result.reasons:
            self.logger.debug(f"{user.id}: {len(result.reasons)} change(s), "
                              f"cost {user.cost:.2f} -> {result.cost:.2f}")
        return result


_default_analyzer = LicenseAnalyzer()


def analyze(user: UserRecord, rule_set: RuleSet) -> AnalysisResult:
    return _default_analyzer.analyze(user, rule_set)
