"""
Test suite for plan parsing

Tests:
1. Backfill - missing or mistyped fields get defaults
2. Cleanup - code fences and surrounding prose
3. Failures - PlanParseError carries the raw prefix
4. Time helpers
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json
from datetime import datetime, timezone

import pytest
from errors import PlanParseError
from fakes import SAMPLE_PLAN, SAMPLE_PLAN_TEXT
from plan import (
    DEFAULT_SUMMARY,
    PARSE_ERROR_MESSAGE,
    Plan,
    parse_iso,
    parse_plan_response,
    strip_code_fences,
    to_iso,
)


NOW = datetime(2026, 10, 19, 9, 30, 0, 123000, tzinfo=timezone.utc)
TOOLS = ["income-estimator", "tax-analyzer"]


def _parse(text):
    return parse_plan_response(text, model_used="gemini-2.5-flash", data_completeness=17,
                               tools_analyzed=TOOLS, now=NOW)


# =============================================================================
# BACKFILL TESTS
# =============================================================================

class TestBackfill:
    """Every field ends up present with a sensible value."""

    def test_full_document(self):
        """A complete response is carried over; metadata comes from the caller."""
        plan = _parse(SAMPLE_PLAN_TEXT)

        assert plan.id == f"plan-{int(NOW.timestamp() * 1000)}"
        assert plan.generated_at == "2026-10-19T09:30:00.123Z"
        assert plan.model_used == "gemini-2.5-flash"
        assert plan.data_completeness == 17
        assert plan.tools_analyzed == TOOLS
        assert plan.retirement_readiness_score == 68
        assert plan.sections[0].title == "Financial Overview"
        assert plan.warnings[0].severity == "warning"
        assert plan.missing_data_suggestions[0].tool_id == "longevity-planner"

    def test_empty_object(self):
        """An empty object parses into a plan made only of defaults."""
        plan = _parse("{}")

        assert plan.executive_summary == DEFAULT_SUMMARY
        assert plan.retirement_readiness_score == 0
        assert plan.sections == []
        assert plan.immediate_actions == []
        assert plan.to_dict()["missingDataSuggestions"] == []

    def test_score_is_clamped(self):
        """Scores outside 0-100 or non-numeric are clamped or zeroed."""
        assert _parse('{"retirementReadinessScore": 140}').retirement_readiness_score == 100
        assert _parse('{"retirementReadinessScore": -3}').retirement_readiness_score == 0
        assert _parse('{"retirementReadinessScore": "72.6"}').retirement_readiness_score == 73
        assert _parse('{"retirementReadinessScore": "high"}').retirement_readiness_score == 0

    def test_section_defaults(self):
        """Sections without ids or with bad enums get defaults."""
        doc = {"sections": [{"summary": "x", "confidence": "certain", "priority": "HIGH"}, "junk"]}
        plan = _parse(json.dumps(doc))

        assert len(plan.sections) == 1, "Non-object entries are dropped"
        section = plan.sections[0]
        assert section.id == "section-0"
        assert section.title == "Untitled Section"
        assert section.icon == "SparklesIcon"
        assert section.confidence == "medium"
        assert section.priority == "high"

    def test_warning_defaults(self):
        """Warnings without severity are informational."""
        plan = _parse('{"warnings": [{"description": "check this"}]}')
        warning = plan.warnings[0]

        assert warning.id == "warning-0"
        assert warning.severity == "info"
        assert warning.title == "Notice"

    def test_mistyped_lists(self):
        """Strings where lists belong become empty lists; non-strings inside lists are dropped."""
        plan = _parse('{"topPriorities": "all of them", "immediateActions": ["call", null, 3]}')

        assert plan.top_priorities == []
        assert plan.immediate_actions == ["call", "3"]


# =============================================================================
# CLEANUP TESTS
# =============================================================================

class TestCleanup:
    """Fences and prose around the JSON."""

    def test_code_fences(self):
        """```json fences are stripped."""
        plan = _parse(f"```json\n{SAMPLE_PLAN_TEXT}\n```")
        assert plan.executive_summary == SAMPLE_PLAN["executiveSummary"]

    def test_bare_fences(self):
        """Fences without a language tag are stripped too."""
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_prose_around_object(self):
        """Text before and after the object is ignored."""
        plan = _parse(f"Here is your plan:\n{SAMPLE_PLAN_TEXT}\nGood luck!")
        assert plan.retirement_readiness_score == 68


# =============================================================================
# FAILURE TESTS
# =============================================================================

class TestParseFailures:
    """Unusable responses raise PlanParseError."""

    def test_not_json(self):
        """Plain prose fails with the standard message."""
        with pytest.raises(PlanParseError) as exc_info:
            _parse("I'm sorry, I can't help with that.")
        assert str(exc_info.value) == PARSE_ERROR_MESSAGE

    def test_raw_prefix_is_truncated(self):
        """The error keeps the first 500 characters of the raw text."""
        raw = "{" + "x" * 2000
        with pytest.raises(PlanParseError) as exc_info:
            _parse(raw)
        assert exc_info.value.raw_prefix == raw[:500]

    def test_array_is_rejected(self):
        """A JSON array is not a plan."""
        with pytest.raises(PlanParseError):
            _parse("[1, 2, 3]")


# =============================================================================
# ROUND TRIP & TIME TESTS
# =============================================================================

class TestPlanSerialization:
    """Cached copies read back into the same plan."""

    def test_cached_copy_reads_back(self):
        """to_dict output rebuilds an equal Plan."""
        plan = _parse(SAMPLE_PLAN_TEXT)
        assert Plan.from_dict(plan.to_dict()) == plan

    def test_iso_helpers(self):
        """Z suffix, millisecond precision, naive values read as UTC."""
        assert to_iso(NOW) == "2026-10-19T09:30:00.123Z"
        assert parse_iso("2026-10-19T09:30:00.123Z") == NOW
        assert parse_iso("2026-10-19T09:30:00").tzinfo is not None
        assert parse_iso("yesterday") is None
        assert parse_iso(None) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
