"""
Rule state bookkeeping tests.
"""

from core import catalog as lic
from rules.base_rule import RuleState


def test_replacing_marks_introduced_suite():
    state = RuleState(licenses=(lic.O365_E1,)).replacing(lic.O365_E1, lic.M365_E3)

    assert state.licenses == (lic.M365_E3,)
    assert state.retiered == frozenset({lic.M365_E3})


def test_replacing_leaves_already_held_suite_unmarked():
    state = RuleState(licenses=(lic.M365_E5, lic.M365_E3)).replacing(lic.M365_E5, lic.M365_E3)

    assert state.licenses == (lic.M365_E3,)
    assert state.retiered == frozenset()
