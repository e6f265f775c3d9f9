"""
License catalog tests.

Covers identifier resolution through the ordered matching passes, the
zero-cost fallback for unknown licenses, normalization and pricing.
"""

import json

import pytest

from core import catalog as lic
from core.catalog import DEFAULT_CATALOG, LicenseCatalog, compute_cost, normalize, resolve


# --- Resolution ---


def test_sku_alias_resolves_exactly():
    info = DEFAULT_CATALOG.resolve("SPE_E5")
    assert info.display_name == lic.M365_E5
    assert info.cost_per_month == 57.00
    assert info.is_suite
    assert DEFAULT_CATALOG.match_pass("SPE_E5") == "exact"


def test_display_name_resolves_exactly_in_any_case():
    assert DEFAULT_CATALOG.resolve("microsoft 365 e3").display_name == lic.M365_E3
    assert DEFAULT_CATALOG.match_pass("Microsoft 365 E3") == "exact"


def test_space_for_underscore_folds():
    assert DEFAULT_CATALOG.match_pass("spe e5") == "underscore_fold"
    assert DEFAULT_CATALOG.resolve("spe e5").display_name == lic.M365_E5


def test_decorated_name_matches_by_substring():
    info = DEFAULT_CATALOG.resolve("Microsoft 365 E5 (no Teams)")
    assert info.display_name == lic.M365_E5
    assert DEFAULT_CATALOG.match_pass("Microsoft 365 E5 (no Teams)") == "substring"


def test_folded_alias_matches_by_substring():
    assert DEFAULT_CATALOG.match_pass("MDATP XPLAT seat") == "substring_folded"
    assert DEFAULT_CATALOG.resolve("MDATP XPLAT seat").display_name == lic.DEFENDER_ENDPOINT_P2


def test_unknown_license_falls_back_to_zero_cost():
    info = resolve("  Contoso Widget  ")
    assert info.display_name == "Contoso Widget"
    assert info.cost_per_month == 0.0
    assert not info.is_suite
    assert DEFAULT_CATALOG.match_pass("Contoso Widget") == "fallback"


def test_blank_identifier_never_fuzzy_matches():
    assert DEFAULT_CATALOG.lookup("   ") is None
    assert DEFAULT_CATALOG.resolve("").cost_per_month == 0.0
    assert DEFAULT_CATALOG.match_pass("") == "fallback"


# --- Normalization ---


def test_normalize_orders_suites_before_addons():
    result = normalize(["VISIOCLIENT", "SPE_E3", "ATP_ENTERPRISE"])
    assert result == (lic.M365_E3, lic.DEFENDER_O365_P1, lic.VISIO_P2)


def test_normalize_collapses_aliases_of_the_same_license():
    assert normalize(["SPE_E5", "Microsoft 365 E5", "spe_e5"]) == (lic.M365_E5,)


def test_normalize_is_idempotent():
    messy = ["SPE_E5", "VISIOCLIENT", "Contoso Widget", "MCOEV", "STANDARDPACK", ""]
    once = normalize(messy)
    assert normalize(once) == once
    assert "" not in once


def test_normalize_keeps_unknown_licenses():
    assert "Contoso Widget" in normalize(["Contoso Widget", "SPE_E3"])


# --- Pricing ---


def test_compute_cost_sums_catalog_prices():
    assert compute_cost(["SPE_E5", "VISIOCLIENT"]) == pytest.approx(72.00)
    assert compute_cost(normalize(["SPE_E5", "VISIOCLIENT"])) == pytest.approx(72.00)


def test_compute_cost_is_stable():
    licenses = normalize(["SPE_E3", "WIN_DEF_ATP", "POWER_BI_PRO"])
    assert compute_cost(licenses) == compute_cost(licenses)


def test_unknown_licenses_add_nothing():
    assert compute_cost(["Contoso Widget"]) == 0.0
    assert compute_cost([]) == 0.0


# --- Overrides ---


def test_json_overrides_layer_over_default(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([
        {"displayName": "Contoso Widget", "costPerMonth": 4.5, "aliases": ["CWIDGET"]},
        {"displayName": lic.M365_E5, "costPerMonth": 60, "isSuite": True},
    ]))

    custom = LicenseCatalog.from_json_file(str(path))

    assert custom.resolve("CWIDGET").cost_per_month == 4.5
    assert custom.resolve("SPE_E5").cost_per_month == 60.0
    assert custom.resolve("SPE_E5").is_suite
    assert len(custom) == len(DEFAULT_CATALOG) + 1
    # The default catalog is untouched
    assert DEFAULT_CATALOG.resolve("SPE_E5").cost_per_month == 57.00


def test_json_overrides_must_be_a_list(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({"displayName": "Contoso Widget"}))
    with pytest.raises(ValueError):
        LicenseCatalog.from_json_file(str(path))


def test_json_override_entry_needs_display_name(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps([{"costPerMonth": 3}]))
    with pytest.raises(ValueError):
        LicenseCatalog.from_json_file(str(path))
