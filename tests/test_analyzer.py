"""
Per-user analyzer tests.

Walks users through the ordered rule steps and checks the recommended
license set, the recomputed cost and the recorded justifications.
"""

import pytest

from conftest import make_user
from core import catalog as lic
from core.analyzer import LicenseAnalyzer, analyze
from core.catalog import DEFAULT_CATALOG
from core.models import BooleanRule, ReasonKind, RuleScope, RuleSet, ScopedRule
from core.strategies import BALANCED_RULES, COST_RULES, EVERYONE, ON, SECURITY_RULES


def kinds(result):
    return [reason.kind for reason in result.reasons]


# --- Reference scenarios ---


def test_busy_entry_tier_user_is_upgraded_under_security():
    user = make_user("u1", [lic.O365_E1], department="IT", usage_gb=30, max_gb=50)

    result = analyze(user, SECURITY_RULES)

    assert lic.M365_E3 in result.licenses
    assert lic.O365_E1 not in result.licenses
    first = result.reasons[0]
    assert first.kind is ReasonKind.UPGRADE
    assert "Upgrade" in first.message
    assert "60%" in first.message


def test_idle_top_tier_user_is_downgraded_under_cost():
    user = make_user("u2", [lic.M365_E5], department="Marketing", usage_gb=5, max_gb=100)

    result = analyze(user, COST_RULES)

    assert result.licenses == (lic.M365_E3,)
    expected_saving = (DEFAULT_CATALOG.resolve(lic.M365_E5).cost_per_month
                       - DEFAULT_CATALOG.resolve(lic.M365_E3).cost_per_month)
    assert user.cost - result.cost == pytest.approx(expected_saving)
    assert len(result.reasons) == 1
    assert result.reasons[0].kind is ReasonKind.DOWNGRADE


def test_redundant_endpoint_addon_is_stripped():
    user = make_user("u3", [lic.M365_E5, lic.DEFENDER_ENDPOINT_P2], department="Sales")
    rules = RuleSet(remove_redundant_addons=BooleanRule(enabled=True))

    result = analyze(user, rules)

    assert result.licenses == (lic.M365_E5,)
    addon_price = DEFAULT_CATALOG.resolve(lic.DEFENDER_ENDPOINT_P2).cost_per_month
    assert user.cost - result.cost == pytest.approx(addon_price)
    assert kinds(result) == [ReasonKind.REDUNDANCY]


@pytest.mark.parametrize("rules", [COST_RULES, BALANCED_RULES, SECURITY_RULES])
def test_missing_mailbox_data_never_downgrades(rules):
    user = make_user("u4", [lic.M365_E5, lic.BUSINESS_PREMIUM], department="Sales",
                     usage_gb=0, max_gb=0)

    result = analyze(user, rules)

    assert ReasonKind.DOWNGRADE not in kinds(result)
    assert lic.M365_E5 in result.licenses


# --- Properties ---


def test_analysis_is_deterministic():
    user = make_user("u5", ["SPE_E5", "VISIOCLIENT", "WIN_DEF_ATP", "PROJECTPREMIUM"],
                     department="Sales", usage_gb=3, max_gb=100)
    assert analyze(user, COST_RULES) == analyze(user, COST_RULES)


def test_input_record_is_not_modified():
    user = make_user("u6", ["SPE_E5"], usage_gb=1, max_gb=100)
    analyze(user, COST_RULES)
    assert user.licenses == ("SPE_E5",)
    assert user.cost == pytest.approx(57.00)


def test_raising_threshold_never_flags_fewer_users():
    users = [make_user(f"m{ratio}", [lic.M365_E5], department="Sales",
                       usage_gb=ratio, max_gb=100) for ratio in range(5, 100, 10)]

    flagged = []
    for threshold in range(0, 101, 10):
        rules = RuleSet(downgrade_e5=ScopedRule(enabled=True, threshold=threshold))
        flagged.append(sum(1 for user in users
                           if ReasonKind.DOWNGRADE in kinds(analyze(user, rules))))

    assert flagged == sorted(flagged)
    assert flagged[0] == 0
    assert flagged[-1] == len(users)


def test_empty_department_list_restricts_everyone():
    nobody = ScopedRule(enabled=True, scope=RuleScope.CUSTOM, departments=())
    rules = RuleSet(upgrade_underprovisioned=nobody, downgrade_e5=nobody, downgrade_e3=nobody)

    for department in ("IT", "Sales", "Security", ""):
        for licenses, usage in (([lic.O365_E1], 90), ([lic.M365_E5], 1), ([lic.M365_E3], 1)):
            user = make_user("x", licenses, department=department, usage_gb=usage, max_gb=100)
            assert analyze(user, rules).reasons == ()


def test_custom_department_scope():
    rules = RuleSet(downgrade_e5=ScopedRule(enabled=True, scope=RuleScope.CUSTOM,
                                            departments=("sales",)))
    sales = make_user("s", [lic.M365_E5], department="Sales", usage_gb=1, max_gb=100)
    marketing = make_user("m", [lic.M365_E5], department="Marketing", usage_gb=1, max_gb=100)

    assert analyze(sales, rules).licenses == (lic.M365_E3,)
    assert analyze(marketing, rules).licenses == (lic.M365_E5,)


# --- Individual steps ---


def test_suite_moves_one_tier_per_pass():
    user = make_user("t", [lic.M365_E5], department="Sales", usage_gb=1, max_gb=100)
    rules = RuleSet(downgrade_e5=EVERYONE, downgrade_e3=EVERYONE)

    result = analyze(user, rules)

    assert result.licenses == (lic.M365_E3,)


def test_protected_departments_keep_their_tier():
    for department in ("Security", "legal", "Compliance"):
        user = make_user("p", [lic.M365_E5], department=department, usage_gb=1, max_gb=100)
        assert analyze(user, COST_RULES).licenses == (lic.M365_E5,)


def test_per_rule_threshold_overrides_global():
    user = make_user("r", [lic.M365_E5], department="Sales", usage_gb=40, max_gb=100)
    below = RuleSet(downgrade_e5=ScopedRule(enabled=True, threshold=45), usage_threshold=20)
    above = RuleSet(downgrade_e5=ScopedRule(enabled=True), usage_threshold=20)

    assert analyze(user, below).licenses == (lic.M365_E3,)
    assert analyze(user, above).licenses == (lic.M365_E5,)


def test_business_tiers_downgrade():
    user = make_user("b", [lic.BUSINESS_PREMIUM], department="Sales", usage_gb=2, max_gb=50)
    rules = RuleSet(downgrade_premium=EVERYONE)

    result = analyze(user, rules)

    assert result.licenses == (lic.BUSINESS_STANDARD,)
    assert "Downgrade" in result.reasons[0].message


def test_basic_to_standard_needs_heavy_usage():
    rules = RuleSet(upgrade_basic_to_standard=EVERYONE)
    busy = make_user("b1", [lic.BUSINESS_BASIC], usage_gb=40, max_gb=50)
    quiet = make_user("b2", [lic.BUSINESS_BASIC], usage_gb=20, max_gb=50)

    assert analyze(busy, rules).licenses == (lic.BUSINESS_STANDARD,)
    assert analyze(quiet, rules).licenses == (lic.BUSINESS_BASIC,)


def test_security_departments_get_top_tier():
    it_user = make_user("i", [lic.M365_E3], department="IT", usage_gb=10, max_gb=100)
    sales_user = make_user("s", [lic.M365_E3], department="Sales", usage_gb=10, max_gb=100)

    assert analyze(it_user, SECURITY_RULES).licenses == (lic.M365_E5,)
    assert analyze(sales_user, SECURITY_RULES).licenses == (lic.M365_E3,)


def test_upgrade_then_redundancy_sees_new_suite():
    user = make_user("u", [lic.O365_E1, lic.INTUNE_P1], department="Sales",
                     usage_gb=60, max_gb=100)
    rules = RuleSet(upgrade_underprovisioned=EVERYONE, remove_redundant_addons=ON)

    result = analyze(user, rules)

    assert result.licenses == (lic.M365_E3,)
    assert kinds(result) == [ReasonKind.UPGRADE, ReasonKind.REDUNDANCY]


def test_unused_addons_removed_outside_their_departments():
    user = make_user("a", [lic.M365_E3, lic.VISIO_P2, lic.PROJECT_P5, lic.POWER_BI_PPU],
                     department="Sales", usage_gb=5, max_gb=100)

    result = analyze(user, RuleSet(remove_unused_addons=ON))

    assert result.licenses == (lic.M365_E3, lic.POWER_BI_PRO)
    assert set(kinds(result)) == {ReasonKind.CLEANUP}
    assert len(result.reasons) == 3


def test_project_office_keeps_a_smaller_project_plan():
    user = make_user("p", [lic.M365_E3, lic.VISIO_P2, lic.PROJECT_P5],
                     department="PMO", usage_gb=5, max_gb=100)

    result = analyze(user, RuleSet(remove_unused_addons=ON))

    assert result.licenses == (lic.M365_E3, lic.PROJECT_P3, lic.VISIO_P2)


def test_consolidation_removes_overlaps():
    user = make_user("c", [lic.M365_E5, lic.O365_E3, lic.EXCHANGE_P2, lic.TEAMS_EXPLORATORY],
                     department="Sales")

    result = analyze(user, RuleSet(consolidate_overlap=ON))

    assert result.licenses == (lic.M365_E5,)
    assert len(result.reasons) == 3


@pytest.mark.parametrize("department, expected", [
    ("Engineering", lic.GITHUB_COPILOT),
    ("Analytics", lic.M365_COPILOT),
])
def test_power_users_get_an_assistant(department, expected):
    user = make_user("p", [lic.M365_E3], department=department, usage_gb=80, max_gb=100)

    result = analyze(user, RuleSet(add_copilot_for_power_users=ON))

    assert expected in result.licenses
    assert kinds(result) == [ReasonKind.UPGRADE]


def test_assistant_needs_power_user_in_technical_department():
    rules = RuleSet(add_copilot_for_power_users=ON)
    cases = [
        make_user("a", [lic.M365_E3], department="Sales", usage_gb=80, max_gb=100),
        make_user("b", [lic.M365_E3], department="Engineering", usage_gb=30, max_gb=100),
        make_user("c", [lic.M365_E3, lic.M365_COPILOT], department="Design",
                  usage_gb=80, max_gb=100),
    ]
    for user in cases:
        assert analyze(user, rules).reasons == ()


def test_unknown_licenses_pass_through():
    user = make_user("w", ["Contoso Widget", "SPE_E5"], department="Sales",
                     usage_gb=1, max_gb=100)

    result = analyze(user, COST_RULES)

    assert "Contoso Widget" in result.licenses
    assert result.cost == pytest.approx(36.00)


def test_unlicensed_user_is_a_no_op():
    user = make_user("n", [], department="Sales", usage_gb=1, max_gb=100)

    result = analyze(user, COST_RULES)

    assert result.licenses == ()
    assert result.cost == 0.0
    assert result.reasons == ()


def test_analyzer_accepts_a_custom_catalog():
    catalog = DEFAULT_CATALOG.with_entries([(lic.M365_E3, 40.0, True, ())])
    user = make_user("k", [lic.M365_E5], department="Sales", usage_gb=1, max_gb=100)

    result = LicenseAnalyzer(catalog).analyze(user, COST_RULES)

    assert result.cost == pytest.approx(40.0)
    assert "+" not in result.reasons[0].message
    assert "-$17.00/mo" in result.reasons[0].message


def test_tier_step_drops_suite_when_target_already_held():
    user = make_user("h", [lic.O365_E1, lic.M365_E3], department="Sales",
                     usage_gb=30, max_gb=50)

    result = analyze(user, RuleSet(upgrade_underprovisioned=EVERYONE))

    assert result.licenses == (lic.M365_E3,)
    assert kinds(result) == [ReasonKind.CLEANUP]
    assert "overlaps with" in result.reasons[0].message
    assert "-$10.00/mo" in result.reasons[0].message
    assert user.cost - result.cost == pytest.approx(10.00)


def test_held_suite_still_gets_its_own_tier_step():
    user = make_user("d", [lic.M365_E5, lic.M365_E3], department="Sales",
                     usage_gb=25, max_gb=100)
    rules = RuleSet(downgrade_e5=ScopedRule(enabled=True, threshold=30),
                    downgrade_e3=ScopedRule(enabled=True, threshold=50))

    result = analyze(user, rules)

    assert result.licenses == (lic.O365_E1,)
    assert kinds(result) == [ReasonKind.CLEANUP, ReasonKind.DOWNGRADE]
