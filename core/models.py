# =============================================================================
# core/models.py - Unified data models
# =============================================================================

from dataclasses import dataclass, field, replace
from typing import Dict, Any, List, Optional, Tuple, Union
from enum import Enum


class RuleSetError(ValueError):
    """Raised when a rule configuration cannot be parsed"""


class Strategy(Enum):
    """Enumeration of optimization strategies"""
    CURRENT = "current"
    SECURITY = "security"
    COST = "cost"
    BALANCED = "balanced"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: Union[str, "Strategy"]) -> "Strategy":
        """Accept a Strategy or its name/value in any case"""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for strategy in cls:
            if key in (strategy.value, strategy.name.lower()):
                return strategy
        raise ValueError(f"Unknown strategy: {value}")


class RuleScope(Enum):
    """Department selector attached to a scoped rule"""
    ALL = "all"
    SECURITY_DEPARTMENTS = "security"
    CUSTOM = "custom"


class ReasonKind(Enum):
    """What a justification records"""
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    CLEANUP = "cleanup"
    REDUNDANCY = "redundancy"

    @property
    def reduces_spend(self) -> bool:
        return self is not ReasonKind.UPGRADE


class UserStatus(Enum):
    """Mailbox health derived from usage ratio"""
    ACTIVE = "Active"
    WARNING = "Warning"
    CRITICAL = "Critical"


class Commitment(Enum):
    """Billing basis used for cost projections"""
    MONTHLY = "monthly"
    ANNUAL = "annual"

    @property
    def label(self) -> str:
        return "Annual Commitment" if self is Commitment.ANNUAL else "Monthly Commitment"


DEFAULT_SECURITY_DEPARTMENTS: Tuple[str, ...] = (
    "IT", "Security", "Information Security", "Compliance", "Legal", "Executive",
)


def normalize_department(department: Optional[str]) -> str:
    """Case- and whitespace-insensitive department key"""
    if not department:
        return ""
    return ' '.join(str(department).split()).lower()


def derive_status(usage_gb: float, max_gb: float) -> UserStatus:
    """>90% Critical, >70% Warning, otherwise Active (also when quota is unknown)"""
    if not max_gb or max_gb <= 0:
        return UserStatus.ACTIVE
    ratio = usage_gb / max_gb * 100
    if ratio > 90:
        return UserStatus.CRITICAL
    if ratio > 70:
        return UserStatus.WARNING
    return UserStatus.ACTIVE


@dataclass(frozen=True)
class UserRecord:
    """One employee's licensing state"""
    id: str
    display_name: str = ""
    upn: str = ""
    department: str = ""
    licenses: Tuple[str, ...] = ()
    usage_gb: float = 0.0
    max_gb: float = 0.0
    cost: float = 0.0
    status: UserStatus = UserStatus.ACTIVE

    def __post_init__(self):
        # Accept any iterable of licenses but keep the record hashable
        if not isinstance(self.licenses, tuple):
            object.__setattr__(self, 'licenses', tuple(self.licenses))

    @property
    def usage_ratio(self) -> float:
        """Mailbox usage percentage, -1 when no mailbox data is available"""
        if not self.max_gb or self.max_gb <= 0:
            return -1.0
        return self.usage_gb / self.max_gb * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'displayName': self.display_name,
            'upn': self.upn,
            'department': self.department,
            'licenses': list(self.licenses),
            'usageGB': self.usage_gb,
            'maxGB': self.max_gb,
            'cost': self.cost,
            'status': self.status.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserRecord":
        """Build a record from the camelCase shape used by the dashboard API"""
        status = data.get('status') or UserStatus.ACTIVE.value
        licenses = data.get('licenses') or []
        if isinstance(licenses, str):
            licenses = [part.strip() for part in licenses.split(';') if part.strip()]
        if not isinstance(licenses, (list, tuple)) or not all(isinstance(l, str) for l in licenses):
            raise ValueError(f"licenses must be a list of strings, got {licenses!r}")
        return cls(
            id=str(data.get('id', '')),
            display_name=data.get('displayName', '') or '',
            upn=data.get('upn', '') or '',
            department=data.get('department', '') or '',
            licenses=tuple(licenses),
            usage_gb=float(data.get('usageGB') or 0),
            max_gb=float(data.get('maxGB') or 0),
            cost=float(data.get('cost') or 0),
            status=UserStatus(status) if not isinstance(status, UserStatus) else status,
        )


@dataclass(frozen=True)
class LicenseInfo:
    """Catalog entry for one license"""
    identifier: str
    display_name: str
    cost_per_month: float = 0.0
    is_suite: bool = False


# -----------------------------------------------------------------------------
# Rule configuration
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class BooleanRule:
    """Unscoped on/off rule"""
    enabled: bool = False

    def is_enabled(self) -> bool:
        return self.enabled

    def toggled(self) -> "BooleanRule":
        return replace(self, enabled=not self.enabled)

    def applies_to(self, department: str, security_departments: Tuple[str, ...]) -> bool:
        return self.enabled

    def to_dict(self) -> Any:
        return self.enabled


@dataclass(frozen=True)
class ScopedRule:
    """Rule with a department scope and an optional usage threshold"""
    enabled: bool = False
    scope: RuleScope = RuleScope.ALL
    departments: Tuple[str, ...] = ()
    threshold: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.departments, tuple):
            object.__setattr__(self, 'departments', tuple(self.departments))

    def is_enabled(self) -> bool:
        return self.enabled

    def toggled(self) -> "ScopedRule":
        return replace(self, enabled=not self.enabled)

    def applies_to(self, department: str, security_departments: Tuple[str, ...]) -> bool:
        return self.enabled and self.matches(department, security_departments)

    def matches(self, department: str, security_departments: Tuple[str, ...]) -> bool:
        """Whether the rule's scope covers the given department"""
        if self.scope is RuleScope.ALL:
            return True
        key = normalize_department(department)
        if self.scope is RuleScope.SECURITY_DEPARTMENTS:
            candidates = security_departments
        else:
            # An empty custom list matches nobody
            candidates = self.departments
        return key in {normalize_department(d) for d in candidates}

    def effective_threshold(self, default: float) -> float:
        return self.threshold if self.threshold is not None else default

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enabled': self.enabled,
            'scope': self.scope.value,
            'departments': list(self.departments),
            'threshold': self.threshold,
        }


Rule = Union[BooleanRule, ScopedRule]

SCOPED_RULE_NAMES: Tuple[str, ...] = (
    'upgrade_underprovisioned',
    'upgrade_basic_to_standard',
    'upgrade_to_e5',
    'upgrade_to_premium',
    'downgrade_e5',
    'downgrade_e3',
    'downgrade_premium',
    'downgrade_standard_to_basic',
)

BOOLEAN_RULE_NAMES: Tuple[str, ...] = (
    'remove_unused_addons',
    'remove_redundant_addons',
    'consolidate_overlap',
    'add_copilot_for_power_users',
)

USAGE_THRESHOLD_MIN = 5
USAGE_THRESHOLD_MAX = 50
USAGE_THRESHOLD_STEP = 5


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.capitalize() for part in rest)


@dataclass(frozen=True)
class RuleSet:
    """Full configuration for one analysis pass"""
    upgrade_underprovisioned: ScopedRule = ScopedRule()
    upgrade_basic_to_standard: ScopedRule = ScopedRule()
    upgrade_to_e5: ScopedRule = ScopedRule()
    upgrade_to_premium: ScopedRule = ScopedRule()
    downgrade_e5: ScopedRule = ScopedRule()
    downgrade_e3: ScopedRule = ScopedRule()
    downgrade_premium: ScopedRule = ScopedRule()
    downgrade_standard_to_basic: ScopedRule = ScopedRule()
    remove_unused_addons: BooleanRule = BooleanRule()
    remove_redundant_addons: BooleanRule = BooleanRule()
    consolidate_overlap: BooleanRule = BooleanRule()
    add_copilot_for_power_users: BooleanRule = BooleanRule()
    usage_threshold: float = 20
    security_departments: Tuple[str, ...] = DEFAULT_SECURITY_DEPARTMENTS

    def __post_init__(self):
        if not isinstance(self.security_departments, tuple):
            object.__setattr__(self, 'security_departments', tuple(self.security_departments))

    def rule(self, name: str) -> Rule:
        if name not in SCOPED_RULE_NAMES and name not in BOOLEAN_RULE_NAMES:
            raise RuleSetError(f"Unknown rule: {name}")
        return getattr(self, name)

    def toggled(self, name: str) -> "RuleSet":
        """Copy of this rule set with one rule flipped"""
        return replace(self, **{name: self.rule(name).toggled()})

    def with_threshold(self, usage_threshold: float) -> "RuleSet":
        _validate_usage_threshold(usage_threshold)
        return replace(self, usage_threshold=usage_threshold)

    def enabled_rules(self) -> List[str]:
        return [name for name in SCOPED_RULE_NAMES + BOOLEAN_RULE_NAMES
                if self.rule(name).is_enabled()]

    def to_dict(self) -> Dict[str, Any]:
        data = {_camel(name): self.rule(name).to_dict()
                for name in SCOPED_RULE_NAMES + BOOLEAN_RULE_NAMES}
        data['usageThreshold'] = self.usage_threshold
        data['securityDepartments'] = list(self.security_departments)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["RuleSet"] = None) -> "RuleSet":
        """
        Parse a rule configuration, accepting snake_case or camelCase keys.

        Each rule may be given as a bare boolean or as an object with
        enabled/scope/departments/threshold; it is coerced into the kind
        the rule is declared as. Keys not present keep the value from base.
        """
        if not isinstance(data, dict):
            raise RuleSetError("Rule configuration must be an object")

        base = base or cls()
        lookup = {}
        for key, value in data.items():
            lookup[key] = value
            lookup[_camel(key)] = value

        changes: Dict[str, Any] = {}
        for name in SCOPED_RULE_NAMES:
            raw = lookup.get(_camel(name), lookup.get(name))
            if raw is not None:
                changes[name] = _parse_scoped_rule(name, raw, getattr(base, name))
        for name in BOOLEAN_RULE_NAMES:
            raw = lookup.get(_camel(name), lookup.get(name))
            if raw is not None:
                changes[name] = _parse_boolean_rule(name, raw)

        threshold = lookup.get('usageThreshold')
        if threshold is not None:
            try:
                threshold = float(threshold)
            except (TypeError, ValueError):
                raise RuleSetError(f"Invalid usage threshold: {threshold!r}")
            _validate_usage_threshold(threshold)
            changes['usage_threshold'] = threshold

        departments = lookup.get('securityDepartments')
        if departments is not None:
            changes['security_departments'] = tuple(_parse_departments(departments))

        return replace(base, **changes)


def _validate_usage_threshold(value: float) -> None:
    if not USAGE_THRESHOLD_MIN <= value <= USAGE_THRESHOLD_MAX or value % USAGE_THRESHOLD_STEP:
        raise RuleSetError(
            f"Usage threshold must be between {USAGE_THRESHOLD_MIN} and {USAGE_THRESHOLD_MAX} "
            f"in steps of {USAGE_THRESHOLD_STEP}, got {value}"
        )


def _parse_departments(value: Any) -> List[str]:
    if isinstance(value, str):
        value = value.split(',')
    if not isinstance(value, (list, tuple, set)):
        raise RuleSetError(f"Departments must be a list, got {type(value).__name__}")
    return [str(d).strip() for d in value if str(d).strip()]


def _parse_boolean_rule(name: str, raw: Any) -> BooleanRule:
    if isinstance(raw, bool):
        return BooleanRule(enabled=raw)
    if isinstance(raw, dict):
        return BooleanRule(enabled=bool(raw.get('enabled', False)))
    raise RuleSetError(f"Rule {name} must be a boolean or an object")


def _parse_scoped_rule(name: str, raw: Any, current: ScopedRule) -> ScopedRule:
    if isinstance(raw, bool):
        return replace(current, enabled=raw)
    if not isinstance(raw, dict):
        raise RuleSetError(f"Rule {name} must be a boolean or an object")

    scope_value = raw.get('scope', current.scope.value)
    try:
        scope = scope_value if isinstance(scope_value, RuleScope) else RuleScope(str(scope_value).lower())
    except ValueError:
        raise RuleSetError(f"Unknown scope for {name}: {scope_value!r}")

    threshold = raw.get('threshold', current.threshold)
    if threshold is not None:
        try:
            threshold = float(threshold)
        except (TypeError, ValueError):
            raise RuleSetError(f"Invalid threshold for {name}: {threshold!r}")
        if not 0 <= threshold <= 100:
            raise RuleSetError(f"Threshold for {name} must be between 0 and 100, got {threshold}")

    departments = raw.get('departments', current.departments)
    return ScopedRule(
        enabled=bool(raw.get('enabled', current.enabled)),
        scope=scope,
        departments=tuple(_parse_departments(departments)),
        threshold=threshold,
    )


# -----------------------------------------------------------------------------
# Analysis output
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Reason:
    """Justification recorded by one rule"""
    kind: ReasonKind
    rule: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class AnalysisResult:
    """Recommended license state for one user"""
    licenses: Tuple[str, ...]
    cost: float
    reasons: Tuple[Reason, ...] = ()

    @property
    def messages(self) -> List[str]:
        return [reason.message for reason in self.reasons]

    def has_kind(self, *kinds: ReasonKind) -> bool:
        return any(reason.kind in kinds for reason in self.reasons)


@dataclass(frozen=True)
class AnalyzedUser:
    """User record merged with its analysis result"""
    user: UserRecord
    original_licenses: Tuple[str, ...]
    result: AnalysisResult

    @property
    def licenses(self) -> Tuple[str, ...]:
        return self.result.licenses

    @property
    def cost(self) -> float:
        return self.result.cost

    @property
    def reasons(self) -> Tuple[Reason, ...]:
        return self.result.reasons

    @property
    def original_cost(self) -> float:
        return self.user.cost

    @property
    def delta(self) -> float:
        return self.result.cost - self.user.cost

    @property
    def changed(self) -> bool:
        return self.original_licenses != self.result.licenses

    def to_dict(self) -> Dict[str, Any]:
        data = self.user.to_dict()
        data.update({
            'licenses': list(self.result.licenses),
            'cost': self.result.cost,
            'originalLicenses': list(self.original_licenses),
            'originalCost': self.user.cost,
            'reasons': self.result.messages,
            'reasonKinds': [reason.kind.value for reason in self.result.reasons],
            'changed': self.changed,
        })
        return data


@dataclass
class StrategyStats:
    """Aggregated cost comparison for one strategy"""
    strategy: Strategy
    base_cost: float = 0.0
    new_cost: float = 0.0
    affected_count: int = 0
    upgrade_count: int = 0
    downgrade_count: int = 0
    total_users: int = 0
    reason_counts: Dict[ReasonKind, int] = field(default_factory=dict)

    @property
    def delta(self) -> float:
        return self.new_cost - self.base_cost

    @property
    def annual_cost(self) -> float:
        return self.new_cost * 12

    @property
    def annual_delta(self) -> float:
        return self.delta * 12

    def to_dict(self) -> Dict[str, Any]:
        return {
            'strategy': self.strategy.value,
            'baseCost': round(self.base_cost, 2),
            'newCost': round(self.new_cost, 2),
            'delta': round(self.delta, 2),
            'annualCost': round(self.annual_cost, 2),
            'annualDelta': round(self.annual_delta, 2),
            'affectedCount': self.affected_count,
            'upgradeCount': self.upgrade_count,
            'downgradeCount': self.downgrade_count,
            'totalUsers': self.total_users,
            'reasonCounts': {kind.value: count for kind, count in self.reason_counts.items()},
        }
