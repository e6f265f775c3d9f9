# =============================================================================
# core/batch.py - Batch analyzer and strategy comparison
# =============================================================================

from typing import Dict, List, Optional, Sequence, Union
import logging

from core.analyzer import LicenseAnalyzer
from core.models import (
    UserRecord, RuleSet, Strategy, AnalysisResult, AnalyzedUser, StrategyStats, ReasonKind,
)
from core.strategies import resolve_rule_set

logger = logging.getLogger(__name__)

COMPARED_STRATEGIES = (Strategy.CURRENT, Strategy.SECURITY, Strategy.COST, Strategy.BALANCED)


class BatchAnalyzer:
    """Runs the per-user analyzer across a roster"""

    def __init__(self, analyzer: Optional[LicenseAnalyzer] = None):
        self.analyzer = analyzer or LicenseAnalyzer()
        self.catalog = self.analyzer.catalog
        self.logger = logging.getLogger(self.__class__.__name__)

    def analyze_all(self, users: Sequence[UserRecord], strategy: Union[Strategy, str],
                    rule_set: Optional[RuleSet] = None) -> List[AnalyzedUser]:
        """Analyze every user under one strategy"""
        strategy = Strategy.parse(strategy)
        results = []

        if strategy is Strategy.CURRENT:
            for user in users:
                licenses = self.catalog.normalize(user.licenses)
                results.append(AnalyzedUser(
                    user=user,
                    original_licenses=licenses,
                    result=AnalysisResult(licenses=licenses, cost=user.cost),
                ))
            return results

        resolved = resolve_rule_set(strategy, rule_set)
        for user in users:
            results.append(AnalyzedUser(
                user=user,
                original_licenses=self.catalog.normalize(user.licenses),
                result=self.analyzer.analyze(user, resolved),
            ))

        changed = sum(1 for item in results if item.changed)
        self.logger.info(f"Analyzed {len(results)} users with {strategy.value} strategy: "
                         f"{changed} with recommended changes")
        return results

    def compute_stats(self, users: Sequence[UserRecord], strategy: Union[Strategy, str],
                      rule_set: Optional[RuleSet] = None) -> StrategyStats:
        """Cost and change tallies for one strategy"""
        strategy = Strategy.parse(strategy)
        analyzed = self.analyze_all(users, strategy, rule_set)

        stats = StrategyStats(strategy=strategy, total_users=len(analyzed))
        for item in analyzed:
            stats.base_cost += item.original_cost
            stats.new_cost += item.cost
            if item.changed:
                stats.affected_count += 1
            if item.result.has_kind(ReasonKind.UPGRADE):
                stats.upgrade_count += 1
            if any(reason.kind.reduces_spend for reason in item.reasons):
                stats.downgrade_count += 1
            for reason in item.reasons:
                stats.reason_counts[reason.kind] = stats.reason_counts.get(reason.kind, 0) + 1
        return stats

    def compare_strategies(self, users: Sequence[UserRecord],
                           custom_rules: Optional[RuleSet] = None) -> Dict[Strategy, StrategyStats]:
        """Stats for every strategy card, plus Custom when custom rules are given"""
        comparison = {strategy: self.compute_stats(users, strategy)
                      for strategy in COMPARED_STRATEGIES}
        if custom_rules is not None:
            comparison[Strategy.CUSTOM] = self.compute_stats(users, Strategy.CUSTOM, custom_rules)
        return comparison


_default_batch = BatchAnalyzer()


def analyze_all(users: Sequence[UserRecord], strategy: Union[Strategy, str],
                rule_set: Optional[RuleSet] = None) -> List[AnalyzedUser]:
    return _default_batch.analyze_all(users, strategy, rule_set)


def compute_stats(users: Sequence[UserRecord], strategy: Union[Strategy, str],
                  rule_set: Optional[RuleSet] = None) -> StrategyStats:
    return _default_batch.compute_stats(users, strategy, rule_set)


def compare_strategies(users: Sequence[UserRecord],
                       custom_rules: Optional[RuleSet] = None) -> Dict[Strategy, StrategyStats]:
    return _default_batch.compare_strategies(users, custom_rules)
