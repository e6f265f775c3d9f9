# =============================================================================
# rules/base_rule.py - Abstract optimization rule
# =============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Dict, FrozenSet, Optional, Tuple
import logging

from core.catalog import LicenseCatalog
from core.models import UserRecord, RuleSet, Reason, ReasonKind, normalize_department

# Usage percentage above which an entry-tier user is considered underprovisioned
UPGRADE_TRIGGER_PERCENT = 50

# Usage percentage above which a user counts as a power user
POWER_USER_PERCENT = 50


def department_set(*departments: str) -> FrozenSet[str]:
    return frozenset(normalize_department(d) for d in departments)


@dataclass(frozen=True)
class RuleContext:
    """Inputs shared by every rule step for one user"""
    user: UserRecord
    rule_set: RuleSet
    catalog: LicenseCatalog

    @property
    def usage_ratio(self) -> float:
        return self.user.usage_ratio

    @property
    def department(self) -> str:
        return normalize_department(self.user.department)

    def in_departments(self, departments: FrozenSet[str]) -> bool:
        return self.department in departments

    def price(self, license_name: str) -> float:
        return self.catalog.resolve(license_name).cost_per_month

    def price_delta(self, old: Optional[str], new: Optional[str]) -> float:
        return (self.price(new) if new else 0.0) - (self.price(old) if old else 0.0)


@dataclass(frozen=True)
class RuleState:
    """Working license set threaded through the ordered rule steps"""
    licenses: Tuple[str, ...]
    reasons: Tuple[Reason, ...] = ()
    # Suites introduced by a tier change during this pass
    retiered: FrozenSet[str] = frozenset()

    def has(self, license_name: str) -> bool:
        return license_name in self.licenses

    def has_any(self, license_names) -> bool:
        return any(name in self.licenses for name in license_names)

    def without(self, license_name: str) -> "RuleState":
        return replace(self, licenses=tuple(l for l in self.licenses if l != license_name))

    def adding(self, license_name: str) -> "RuleState":
        if self.has(license_name):
            return self
        return replace(self, licenses=self.licenses + (license_name,))

    def replacing(self, old: str, new: str) -> "RuleState":
        licenses = []
        for name in self.licenses:
            target = new if name == old else name
            if target not in licenses:
                licenses.append(target)
        retiered = self.retiered if self.has(new) else self.retiered | {new}
        return replace(self, licenses=tuple(licenses), retiered=retiered)

    def noting(self, reason: Reason) -> "RuleState":
        return replace(self, reasons=self.reasons + (reason,))


def format_delta(amount: float) -> str:
    sign = '+' if amount >= 0 else '-'
    return f"{sign}${abs(amount):.2f}/mo"


class BaseRule(ABC):
    """One step of the ordered optimization pass"""

    # Attribute on RuleSet holding this rule's configuration
    name: str = ""
    kind: ReasonKind = ReasonKind.CLEANUP

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def is_active(self, context: RuleContext) -> bool:
        """Enabled and scoped to the user's department"""
        config = context.rule_set.rule(self.name)
        return config.applies_to(context.user.department, context.rule_set.security_departments)

    def apply(self, state: RuleState, context: RuleContext) -> RuleState:
        if not self.is_active(context):
            return state
        result = self.transform(state, context)
        for reason in result.reasons[len(state.reasons):]:
            self.logger.debug(f"{context.user.id}: {reason.message}")
        return result

    @abstractmethod
    def transform(self, state: RuleState, context: RuleContext) -> RuleState:
        """Return the license state after this rule"""
        pass

    def reason(self, message: str) -> Reason:
        return Reason(kind=self.kind, rule=self.name, message=message)


class TierChangeRule(BaseRule):
    """Replaces a suite with the adjacent tier when a usage condition holds"""

    # source suite -> target suite
    tiers: Dict[str, str] = {}

    @abstractmethod
    def qualifies(self, context: RuleContext) -> bool:
        """Whether the user meets this rule's usage condition"""
        pass

    @abstractmethod
    def describe(self, old: str, new: str, context: RuleContext) -> str:
        """Justification text for one replacement"""
        pass

    def transform(self, state: RuleState, context: RuleContext) -> RuleState:
        for old, new in self.tiers.items():
            # One tier move per suite per pass
            if not state.has(old) or old in state.retiered:
                continue
            if not self.qualifies(context):
                continue
            if state.has(new):
                state = state.without(old).noting(Reason(
                    kind=ReasonKind.CLEANUP,
                    rule=self.name,
                    message=f"Remove {old}: overlaps with {new} already assigned "
                            f"({format_delta(-context.price(old))})",
                ))
                continue
            state = state.replacing(old, new).noting(self.reason(self.describe(old, new, context)))
        return state
