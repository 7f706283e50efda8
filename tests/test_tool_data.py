"""
Test suite for the Tool Data Normalizer

Covers:
1. Domain transforms - alternate field names, defaults, currency strings
2. Failure containment - one malformed tool never hides the others
3. Snapshot metadata - tools_with_data order, completeness, timestamps
4. Prompt text rendering
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import dataclasses

import pytest
from tool_data import (
    INCOME_ESTIMATOR,
    SS_OPTIMIZER,
    TAX_ANALYZER,
    IDENTITY_BUILDER,
    STATE_RELOCATOR,
    LEGACY_VISUALIZER,
    TOOL_IDS,
    RawToolRecord,
    build_data_snapshot_text,
    completeness_for,
    normalize,
)


# =============================================================================
# SAMPLE PAYLOADS
# =============================================================================

CA_RECORDS = {
    INCOME_ESTIMATOR: {"data": {"totalIncome": 40000}, "created": "2026-10-01T12:00:00.000Z"},
    TAX_ANALYZER: {"data": {"state": "CA", "effectiveTaxRate": 9.3}, "createdAt": "2026-10-02T12:00:00.000Z"},
}

RELOCATOR_RECORD = {
    "data": {
        "formData": {
            "currentState": "ny",
            "targetStates": ["FL", "TX"],
            "employmentStatus": "Retired",
            "moveDate": "2027-06",
        },
        "recommendedState": {
            "targetState": "FL",
            "annualSavings": 12000,
            "score": 88,
            "reasons": ["No state income tax"],
        },
    },
    "created": "2026-09-30T08:00:00.000Z",
}


# =============================================================================
# DOMAIN TRANSFORM TESTS
# =============================================================================

class TestDomainTransforms:
    """Field mapping for individual tools."""

    def test_income_and_tax_basic(self):
        """Income and tax records map to typed domain data."""
        snapshot = normalize(CA_RECORDS)

        assert snapshot.income.total_annual_income == 40000
        assert snapshot.tax.current_state == "CA"
        assert snapshot.tax.effective_tax_rate == 9.3
        assert snapshot.social_security is None, "Tools without records stay absent"

    def test_currency_strings_are_parsed(self):
        """"$40,000" style strings are read as numbers."""
        snapshot = normalize({INCOME_ESTIMATOR: {"data": {"totalIncome": "$40,000", "pension": "1,250.50"}}})

        assert snapshot.income.total_annual_income == 40000
        assert snapshot.income.pension_income == 1250.5

    def test_alternate_field_names(self):
        """Older tool builds used different field names."""
        snapshot = normalize({INCOME_ESTIMATOR: {"data": {"totalAnnualIncome": 55000, "pensionIncome": 9000}}})

        assert snapshot.income.total_annual_income == 55000
        assert snapshot.income.pension_income == 9000

    def test_social_security_defaults(self):
        """Missing claiming ages fall back to 62 and 70."""
        snapshot = normalize({SS_OPTIMIZER: {"data": {"estimatedBenefit": 1800}}})
        ss = snapshot.social_security

        assert ss.current_claim_age == 62
        assert ss.optimal_claim_age == 70
        assert ss.monthly_benefit_at_current == 1800

    def test_state_is_uppercased(self):
        """State codes are stored upper-case regardless of input."""
        snapshot = normalize({TAX_ANALYZER: {"data": {"state": "ca", "effectiveTaxRate": 5}}})
        assert snapshot.tax.current_state == "CA"

    def test_state_relocator_nested_shape(self):
        """The relocator's nested form, recommendation and summary are flattened."""
        snapshot = normalize({STATE_RELOCATOR: RELOCATOR_RECORD})
        rel = snapshot.state_relocation

        assert rel.current_state == "NY"
        assert rel.target_states == ("FL", "TX")
        assert rel.top_recommendation == "FL"
        assert rel.annual_tax_savings == 12000
        assert rel.recommendation_reasons == ("No state income tax",)
        assert rel.is_retired is True

    def test_legacy_tool_id_alias(self):
        """Records saved under a retired tool id are still picked up."""
        snapshot = normalize({"identity-builder": {"data": {"goals": ["Travel", "Garden"]}}})

        assert snapshot.has(IDENTITY_BUILDER)
        assert snapshot.identity.retirement_goals == ("Travel", "Garden")

    def test_canonical_id_wins_over_alias(self):
        """When both ids exist the canonical record is used."""
        snapshot = normalize({
            LEGACY_VISUALIZER: {"data": {"totalEstateValue": 2000000}},
            "legacy-visualizer": {"data": {"totalEstateValue": 5}},
        })
        assert snapshot.legacy.total_estate_value == 2000000

    def test_domain_records_are_immutable(self):
        """Snapshots and their domain records are frozen."""
        snapshot = normalize(CA_RECORDS)
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.income.total_annual_income = 1
        with pytest.raises(dataclasses.FrozenInstanceError):
            snapshot.data_completeness = 100

    def test_last_updated_is_read_only(self):
        """The per-tool timestamp map cannot be changed after normalization."""
        snapshot = normalize(CA_RECORDS)
        with pytest.raises(TypeError):
            snapshot.last_updated[INCOME_ESTIMATOR] = "2030-01-01T00:00:00Z"
        assert snapshot.to_dict()["lastUpdated"][INCOME_ESTIMATOR] == "2026-10-01T12:00:00.000Z"


# =============================================================================
# FAILURE CONTAINMENT TESTS
# =============================================================================

class TestFailureContainment:
    """A bad record only removes its own tool."""

    def test_malformed_numeric_field_drops_only_that_tool(self):
        """A list where a number belongs makes the income record malformed."""
        raw = dict(CA_RECORDS)
        raw[INCOME_ESTIMATOR] = {"data": {"totalIncome": [40000]}}
        snapshot = normalize(raw)

        assert snapshot.income is None
        assert snapshot.tools_with_data == (TAX_ANALYZER,)
        assert snapshot.data_completeness == 8

    def test_non_object_data_is_skipped(self):
        """Data that is not an object is ignored."""
        snapshot = normalize({INCOME_ESTIMATOR: {"data": "oops"}, TAX_ANALYZER: CA_RECORDS[TAX_ANALYZER]})
        assert snapshot.tools_with_data == (TAX_ANALYZER,)

    def test_empty_record_does_not_count(self):
        """A record whose fields are all empty is not data."""
        snapshot = normalize({INCOME_ESTIMATOR: {"data": {"totalIncome": None, "notes": ""}}})

        assert snapshot.tools_with_data == ()
        assert snapshot.data_completeness == 0

    def test_none_and_empty_input(self):
        """No records at all produces an empty snapshot."""
        assert normalize(None).tools_with_data == ()
        assert normalize({}).data_completeness == 0


# =============================================================================
# SNAPSHOT METADATA TESTS
# =============================================================================

class TestSnapshotMetadata:
    """Completeness, ordering and timestamps."""

    def test_ca_scenario_completeness(self):
        """Two of twelve tools rounds to 17%."""
        snapshot = normalize(CA_RECORDS)

        assert snapshot.tools_with_data == (INCOME_ESTIMATOR, TAX_ANALYZER)
        assert snapshot.data_completeness == 17

    def test_completeness_rounding(self):
        """round(100 * n / 12) with halves rounding up."""
        assert completeness_for(0) == 0
        assert completeness_for(1) == 8
        assert completeness_for(3) == 25
        assert completeness_for(6) == 50
        assert completeness_for(12) == 100

    def test_completeness_is_monotonic(self):
        """Adding a tool never lowers completeness."""
        values = [completeness_for(n) for n in range(len(TOOL_IDS) + 1)]
        assert values == sorted(values)

    def test_tools_follow_canonical_order(self):
        """tools_with_data follows the fixed tool order, not input order."""
        raw = {TAX_ANALYZER: CA_RECORDS[TAX_ANALYZER], INCOME_ESTIMATOR: CA_RECORDS[INCOME_ESTIMATOR]}
        assert normalize(raw).tools_with_data == (INCOME_ESTIMATOR, TAX_ANALYZER)

    def test_last_updated_accepts_both_timestamp_keys(self):
        """Both "created" and "createdAt" are read as the record timestamp."""
        snapshot = normalize(CA_RECORDS)

        assert snapshot.last_updated[INCOME_ESTIMATOR] == "2026-10-01T12:00:00.000Z"
        assert snapshot.last_updated[TAX_ANALYZER] == "2026-10-02T12:00:00.000Z"

    def test_raw_record_objects_are_accepted(self):
        """RawToolRecord instances work as well as store dicts."""
        snapshot = normalize({INCOME_ESTIMATOR: RawToolRecord({"totalIncome": 1000}, "2026-01-01T00:00:00Z")})
        assert snapshot.income.total_annual_income == 1000

    def test_to_dict_can_omit_timestamps(self):
        """The timestamp-free form is what content signatures are built from."""
        snapshot = normalize(CA_RECORDS)

        assert "lastUpdated" in snapshot.to_dict()
        data = snapshot.to_dict(include_timestamps=False)
        assert "lastUpdated" not in data
        assert data["income"]["totalAnnualIncome"] == 40000
        assert data["socialSecurity"] is None


# =============================================================================
# PROMPT TEXT TESTS
# =============================================================================

class TestSnapshotText:
    """Markdown rendering for the LLM prompt."""

    def test_header_and_sections(self):
        """Populated domains get a section; absent ones do not."""
        text = build_data_snapshot_text(normalize(CA_RECORDS))

        assert text.startswith("## User Retirement Data (17% complete)")
        assert "### Income Sources" in text
        assert "- Total Annual Income: $40,000" in text
        assert "- Effective Tax Rate: 9.3%" in text
        assert "### Social Security" not in text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
