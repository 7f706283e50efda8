"""
Test suite for the Plan Orchestrator

Tests the generate() pipeline end to end with fake providers and stores:
1. No-data and no-provider failures
2. Provider selection by tier and the auth-only downgrade
3. Parsing, caching and cache-failure tolerance
4. Prompt assembly
"""

import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio

import pytest
from db import LocalPlanStore
from errors import NoDataError, NoProviderError, PlanParseError, ProviderCallError, ProviderErrorKind
from fakes import FakeProvider, FakeToolStore, INCOME_AND_TAX_RECORDS, SAMPLE_PLAN_TEXT
from llm_providers import ProviderConfig
from orchestrator import (
    DEFAULT_MISSING_DATA_SUGGESTIONS,
    USER_REQUEST,
    PlanOrchestrator,
    analyze_tool_data,
    build_orchestrator_prompt,
)
from insights import analyze
from plan_cache import PlanCache, snapshot_signature
from tool_data import normalize


BOTH_KEYS = ProviderConfig(gemini_api_key="g", claude_api_key="c")
GEMINI_ONLY = ProviderConfig(gemini_api_key="g")
CLAUDE_ONLY = ProviderConfig(claude_api_key="c")
NO_KEYS = ProviderConfig()


def _auth_error():
    return ProviderCallError("invalid x-api-key", ProviderErrorKind.AUTH, "claude", "claude-sonnet-4-20250514")


def _build(config=BOTH_KEYS, records=INCOME_AND_TAX_RECORDS, gemini=(SAMPLE_PLAN_TEXT,), claude=(SAMPLE_PLAN_TEXT,),
           store=None, cache_remote=None):
    local = LocalPlanStore(":memory:")
    cache = PlanCache(local, cache_remote if cache_remote is not None else FakeToolStore())
    orchestrator = PlanOrchestrator(
        config,
        store=store if store is not None else FakeToolStore(records),
        cache=cache,
        gemini=FakeProvider("gemini", gemini),
        claude=FakeProvider("claude", claude),
    )
    return orchestrator, local


# =============================================================================
# FAILURE TESTS
# =============================================================================

class TestGenerateFailures:
    """Conditions that stop generation before any plan exists."""

    def test_no_data_lists_three_suggestions(self):
        """No tool data raises NoDataError with the three starter tools."""
        orchestrator, _ = _build(records={})

        with pytest.raises(NoDataError) as exc_info:
            asyncio.run(orchestrator.generate("user-1", "token"))

        suggestions = exc_info.value.suggestions
        assert [s["toolId"] for s in suggestions] == ["income-estimator", "ss-optimizer", "tax-analyzer"]
        assert orchestrator.gemini.calls == [], "No provider call without data"

    def test_suggestions_are_copies(self):
        """Callers can't mutate the module defaults through the error."""
        orchestrator, _ = _build(records={})
        with pytest.raises(NoDataError) as exc_info:
            asyncio.run(orchestrator.generate("user-1", "token"))

        exc_info.value.suggestions[0]["toolId"] = "changed"
        assert DEFAULT_MISSING_DATA_SUGGESTIONS[0]["toolId"] == "income-estimator"

    def test_store_failure_reads_as_no_data(self):
        """An unreachable tool-data store is reported as no data."""
        orchestrator, _ = _build(store=FakeToolStore(INCOME_AND_TAX_RECORDS, fail_load=True))
        with pytest.raises(NoDataError):
            asyncio.run(orchestrator.generate("user-1", "token"))

    def test_no_provider_configured(self):
        """No keys at all raises NoProviderError."""
        orchestrator, _ = _build(config=NO_KEYS)
        with pytest.raises(NoProviderError):
            asyncio.run(orchestrator.generate("user-1", "token"))

    def test_parse_failure_caches_nothing(self):
        """An unparseable response surfaces and leaves the cache untouched."""
        orchestrator, local = _build(gemini=("not json at all",))

        with pytest.raises(PlanParseError):
            asyncio.run(orchestrator.generate("user-1", "token"))
        assert local.get_plan("user-1") is None


# =============================================================================
# PROVIDER SELECTION TESTS
# =============================================================================

class TestProviderSelection:
    """Tier preference, availability fallback and auth downgrade."""

    def test_select_provider(self):
        """Paid prefers Claude, free prefers Gemini, either falls back."""
        assert _build(BOTH_KEYS)[0].select_provider("paid") == "claude"
        assert _build(BOTH_KEYS)[0].select_provider("free") == "gemini"
        assert _build(GEMINI_ONLY)[0].select_provider("paid") == "gemini"
        assert _build(CLAUDE_ONLY)[0].select_provider("free") == "claude"
        with pytest.raises(NoProviderError):
            _build(NO_KEYS)[0].select_provider("free")

    def test_free_tier_uses_gemini(self):
        """Free tier plans come from Gemini."""
        orchestrator, _ = _build()
        result = asyncio.run(orchestrator.generate("user-1", "token"))

        assert result.tier_used == "free"
        assert result.plan.model_used == "gemini-model"
        assert orchestrator.claude.calls == []

    def test_paid_tier_uses_claude(self):
        """Paid tier plans come from Claude."""
        orchestrator, _ = _build()
        result = asyncio.run(orchestrator.generate("user-1", "token", tier="paid"))

        assert result.tier_used == "paid"
        assert result.plan.model_used == "claude-model"

    def test_paid_without_claude_key_reports_free(self):
        """tier_used reflects the provider that actually answered."""
        orchestrator, _ = _build(config=GEMINI_ONLY)
        assert asyncio.run(orchestrator.generate("user-1", "token", tier="paid")).tier_used == "free"

    def test_claude_auth_failure_downgrades(self):
        """A rejected Claude key retries on Gemini and reports the free tier."""
        orchestrator, _ = _build(claude=(_auth_error(),))
        result = asyncio.run(orchestrator.generate("user-1", "token", tier="paid"))

        assert result.tier_used == "free"
        assert len(orchestrator.claude.calls) == 1
        assert len(orchestrator.gemini.calls) == 1

    def test_claude_auth_failure_without_gemini_key(self):
        """No Gemini key means the auth failure surfaces."""
        orchestrator, _ = _build(config=CLAUDE_ONLY, claude=(_auth_error(),))
        with pytest.raises(ProviderCallError) as exc_info:
            asyncio.run(orchestrator.generate("user-1", "token", tier="paid"))
        assert exc_info.value.kind is ProviderErrorKind.AUTH

    def test_claude_rate_limit_is_not_downgraded(self):
        """Only auth failures switch providers."""
        limited = ProviderCallError("slow down", ProviderErrorKind.RATE_LIMITED, "claude", "m")
        orchestrator, _ = _build(claude=(limited,))

        with pytest.raises(ProviderCallError):
            asyncio.run(orchestrator.generate("user-1", "token", tier="paid"))
        assert orchestrator.gemini.calls == []


# =============================================================================
# PLAN & CACHE TESTS
# =============================================================================

class TestGenerateResult:
    """What a successful generate() returns and stores."""

    def test_plan_metadata(self):
        """Completeness and tools come from the snapshot, not the model."""
        orchestrator, _ = _build()
        result = asyncio.run(orchestrator.generate("user-1", "token"))

        assert result.plan.data_completeness == 17
        assert result.plan.tools_analyzed == ["income-estimator", "tax-analyzer"]
        assert result.plan.retirement_readiness_score == 68
        assert result.tokens_used == {"input": 100, "output": 200}
        assert result.to_dict()["cached"] is False

    def test_plan_is_cached_with_signature(self):
        """The stored copy carries the snapshot signature and tier."""
        orchestrator, local = _build()
        asyncio.run(orchestrator.generate("user-1", "token"))

        stored = local.get_plan("user-1")
        assert stored["tierUsed"] == "free"
        assert stored["dataSignature"] == snapshot_signature(normalize(INCOME_AND_TAX_RECORDS))

    def test_cache_write_failure_is_swallowed(self):
        """A failed cache write still returns the plan."""
        orchestrator, local = _build(cache_remote=FakeToolStore(fail_save=True))
        result = asyncio.run(orchestrator.generate("user-1", "token"))

        assert result.plan.executive_summary
        assert local.get_plan("user-1") is not None, "The healthy tier is still written"

    def test_supplied_tool_data_skips_store(self):
        """Caller-supplied data is used as-is."""
        orchestrator, _ = _build(store=FakeToolStore(fail_load=True))
        result = asyncio.run(orchestrator.generate("user-1", "token", tool_data=INCOME_AND_TAX_RECORDS))
        assert result.plan.data_completeness == 17

    def test_focus_areas_reach_the_prompt(self):
        """Focus areas are forwarded to the provider payload."""
        orchestrator, _ = _build()
        asyncio.run(orchestrator.generate("user-1", "token", focus_areas=["taxes", "healthcare"]))

        payload = orchestrator.gemini.calls[0]["payload"]
        assert "USER FOCUS AREAS: The user wants to focus on: taxes, healthcare." in payload

    def test_current_signature(self):
        """Matches the cached signature; None when the store fails."""
        orchestrator, _ = _build()
        expected = snapshot_signature(normalize(INCOME_AND_TAX_RECORDS))
        assert asyncio.run(orchestrator.current_signature("user-1", "token")) == expected

        broken, _ = _build(store=FakeToolStore(fail_load=True))
        assert asyncio.run(broken.current_signature("user-1", "token")) is None


# =============================================================================
# PROMPT TESTS
# =============================================================================

class TestPrompt:
    """System prompt and user payload assembly."""

    def test_prompt_parts(self):
        """The payload holds data, insights and the request, in that order."""
        snapshot = normalize(INCOME_AND_TAX_RECORDS)
        system, payload = build_orchestrator_prompt(snapshot, analyze(snapshot))

        assert "1. Income Estimator (income-estimator)" in system
        assert '"executiveSummary"' in system
        assert "{{" not in system, "Template braces must be unescaped"
        assert payload.index("## User Retirement Data") < payload.index("## Cross-Tool Optimization")
        assert payload.endswith(USER_REQUEST)
        assert "USER FOCUS AREAS" not in payload

    def test_analyze_tool_data(self):
        """The transient insights view normalizes and analyzes in one call."""
        snapshot, insights = analyze_tool_data(INCOME_AND_TAX_RECORDS)

        assert snapshot.data_completeness == 17
        assert insights[0].id == "tax-relocation-opportunity"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
