"""
Data model tests.

Covers user records, the two rule kinds and rule configuration parsing.
"""

import pytest

from core.models import (
    BooleanRule, DEFAULT_SECURITY_DEPARTMENTS, RuleScope, RuleSet, RuleSetError, ScopedRule,
    Strategy, UserRecord, UserStatus, derive_status,
)
from core.strategies import COST_RULES


# --- UserRecord ---


def test_usage_ratio_is_percentage():
    user = UserRecord(id="1", usage_gb=30, max_gb=50)
    assert user.usage_ratio == pytest.approx(60.0)


def test_usage_ratio_without_mailbox_is_sentinel():
    assert UserRecord(id="1", usage_gb=5, max_gb=0).usage_ratio == -1.0


def test_licenses_are_stored_as_tuple():
    user = UserRecord(id="1", licenses=["SPE_E3", "VISIOCLIENT"])
    assert user.licenses == ("SPE_E3", "VISIOCLIENT")


@pytest.mark.parametrize("usage, quota, expected", [
    (95, 100, UserStatus.CRITICAL),
    (75, 100, UserStatus.WARNING),
    (70, 100, UserStatus.ACTIVE),
    (5, 0, UserStatus.ACTIVE),
])
def test_derive_status(usage, quota, expected):
    assert derive_status(usage, quota) is expected


def test_user_from_dashboard_payload():
    user = UserRecord.from_dict({
        "id": 7,
        "displayName": "Dana",
        "upn": "dana@contoso.com",
        "department": "Finance",
        "licenses": "SPE_E3; VISIOCLIENT",
        "usageGB": "12.5",
        "maxGB": 100,
        "cost": 51,
        "status": "Warning",
    })
    assert user.id == "7"
    assert user.licenses == ("SPE_E3", "VISIOCLIENT")
    assert user.usage_gb == 12.5
    assert user.status is UserStatus.WARNING
    assert user.to_dict()["displayName"] == "Dana"


# --- Rule kinds ---


def test_boolean_rule_toggles():
    rule = BooleanRule()
    assert not rule.is_enabled()
    assert rule.toggled().is_enabled()
    assert rule.toggled().applies_to("Anything", ())


def test_scoped_rule_toggle_keeps_scope():
    rule = ScopedRule(enabled=False, scope=RuleScope.CUSTOM, departments=("Sales",), threshold=15)
    flipped = rule.toggled()
    assert flipped.enabled
    assert flipped.scope is RuleScope.CUSTOM
    assert flipped.departments == ("Sales",)
    assert flipped.threshold == 15


def test_security_scope_matches_case_insensitively():
    rule = ScopedRule(enabled=True, scope=RuleScope.SECURITY_DEPARTMENTS)
    assert rule.applies_to("  information   security ", DEFAULT_SECURITY_DEPARTMENTS)
    assert not rule.applies_to("Marketing", DEFAULT_SECURITY_DEPARTMENTS)


def test_empty_custom_scope_matches_nobody():
    rule = ScopedRule(enabled=True, scope=RuleScope.CUSTOM, departments=())
    for department in ("IT", "Sales", "", "Security"):
        assert not rule.applies_to(department, DEFAULT_SECURITY_DEPARTMENTS)


def test_disabled_scoped_rule_never_applies():
    rule = ScopedRule(enabled=False, scope=RuleScope.ALL)
    assert not rule.applies_to("Sales", DEFAULT_SECURITY_DEPARTMENTS)


def test_effective_threshold_prefers_rule_value():
    assert ScopedRule(threshold=35).effective_threshold(20) == 35
    assert ScopedRule().effective_threshold(20) == 20


# --- RuleSet ---


def test_rule_lookup_rejects_unknown_names():
    with pytest.raises(RuleSetError):
        RuleSet().rule("delete_everything")


def test_toggled_flips_one_rule():
    rules = RuleSet().toggled("downgrade_e5").toggled("consolidate_overlap")
    assert rules.enabled_rules() == ["downgrade_e5", "consolidate_overlap"]


def test_with_threshold_validates_step():
    assert RuleSet().with_threshold(35).usage_threshold == 35
    with pytest.raises(RuleSetError):
        RuleSet().with_threshold(33)
    with pytest.raises(RuleSetError):
        RuleSet().with_threshold(60)


def test_from_dict_accepts_bare_booleans():
    rules = RuleSet.from_dict({
        "downgradeE5": True,
        "removeRedundantAddons": True,
        "usageThreshold": 25,
    })
    assert rules.downgrade_e5 == ScopedRule(enabled=True, scope=RuleScope.ALL)
    assert rules.remove_redundant_addons == BooleanRule(enabled=True)
    assert rules.usage_threshold == 25


def test_from_dict_accepts_scoped_objects():
    rules = RuleSet.from_dict({
        "downgrade_e5": {"enabled": True, "scope": "custom", "departments": ["Sales", " HR "],
                         "threshold": 40},
        "consolidateOverlap": {"enabled": True},
    })
    assert rules.downgrade_e5.scope is RuleScope.CUSTOM
    assert rules.downgrade_e5.departments == ("Sales", "HR")
    assert rules.downgrade_e5.threshold == 40
    assert rules.consolidate_overlap.is_enabled()


def test_from_dict_keeps_base_values():
    rules = RuleSet.from_dict({"downgradeE3": True}, base=COST_RULES)
    assert rules.usage_threshold == COST_RULES.usage_threshold
    assert rules.remove_unused_addons.is_enabled()


def test_to_dict_round_trips():
    assert RuleSet.from_dict(COST_RULES.to_dict()) == COST_RULES


@pytest.mark.parametrize("payload", [
    {"downgradeE5": {"enabled": True, "scope": "everyone"}},
    {"downgradeE5": {"enabled": True, "threshold": 150}},
    {"downgradeE5": {"enabled": True, "threshold": "high"}},
    {"usageThreshold": 7},
    {"usageThreshold": 55},
    {"consolidateOverlap": "yes"},
    {"securityDepartments": 12},
])
def test_from_dict_rejects_invalid_values(payload):
    with pytest.raises(RuleSetError):
        RuleSet.from_dict(payload)


def test_from_dict_requires_an_object():
    with pytest.raises(RuleSetError):
        RuleSet.from_dict(["downgradeE5"])


def test_rule_set_error_is_value_error():
    assert issubclass(RuleSetError, ValueError)


# --- Strategy ---


def test_strategy_parse_is_case_insensitive():
    assert Strategy.parse("Balanced") is Strategy.BALANCED
    assert Strategy.parse(" COST ") is Strategy.COST
    assert Strategy.parse(Strategy.CUSTOM) is Strategy.CUSTOM


def test_strategy_parse_rejects_unknown():
    with pytest.raises(ValueError):
        Strategy.parse("aggressive")


@pytest.mark.parametrize("licenses", [[123], ["SPE_E3", None], {"sku": "SPE_E3"}])
def test_user_from_dict_rejects_non_string_licenses(licenses):
    with pytest.raises(ValueError):
        UserRecord.from_dict({"id": "1", "licenses": licenses})
