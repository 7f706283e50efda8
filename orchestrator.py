"""
Plan Orchestrator

Generates the unified retirement plan for one user:

    fetch tool data -> normalize -> analyze -> pick provider -> LLM call
    (model / provider fallback) -> parse -> cache both tiers

Steps run strictly in order inside one generate() call. Nothing is persisted
until the plan has been parsed, so an abandoned call leaves no partial state.

Usage:
    from orchestrator import PlanOrchestrator
    from llm_providers import ProviderConfig

    orchestrator = PlanOrchestrator(ProviderConfig.from_env(), store=ToolDataStore(), cache=plan_cache)
    result = await orchestrator.generate(user_id, auth_token, tier="paid", focus_areas=["taxes"])
    return jsonify(result.to_dict())
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from errors import (
    CacheWriteError,
    NoDataError,
    NoProviderError,
    ProviderCallError,
    ProviderErrorKind,
    ToolDataStoreError,
)
from insights import Insight, analyze, format_insights_for_prompt
from llm_providers import (
    PROVIDER_CLAUDE,
    PROVIDER_GEMINI,
    ClaudeProvider,
    CompletionResult,
    GeminiProvider,
    ProviderConfig,
)
from plan import Plan, parse_plan_response
from plan_cache import PlanCache, snapshot_signature
from tool_data import (
    INCOME_ESTIMATOR,
    SS_OPTIMIZER,
    TAX_ANALYZER,
    TOOL_NAMES,
    ToolSnapshot,
    build_data_snapshot_text,
    normalize,
)
from tool_store import ToolDataStore

logger = logging.getLogger(__name__)

TIER_FREE = "free"
TIER_PAID = "paid"

NO_DATA_MESSAGE = (
    "No tool data available. Please use at least one planning tool before generating a unified plan."
)
NO_PROVIDER_MESSAGE = "No AI provider is configured. Set GEMINI_API_KEY or CLAUDE_API_KEY."

DEFAULT_MISSING_DATA_SUGGESTIONS = (
    {"tool": "Income Estimator", "toolId": INCOME_ESTIMATOR,
     "reason": "Start by projecting your retirement income sources"},
    {"tool": "Social Security Optimizer", "toolId": SS_OPTIMIZER,
     "reason": "Optimize your Social Security claiming strategy"},
    {"tool": "Tax Impact Analyzer", "toolId": TAX_ANALYZER,
     "reason": "Understand your retirement tax situation"},
)

USER_REQUEST = "Generate my unified retirement plan based on all my tool data."


# ------------------------ Prompt ------------------------ #

def _tool_catalog() -> str:
    descriptions = [
        "Retirement income sources, scenarios, net worth",
        "Claiming age strategies, spousal benefits, NPV analysis",
        "State/federal tax projections, IRMAA, Roth strategies",
        "Premiums, out-of-pocket, HSA, Medicare, LTC",
        "International destinations, cost of living, visa requirements",
        "Domestic relocation, tax savings, cost of living comparisons",
        "Life expectancy, withdrawal strategies, Monte Carlo",
        "Purpose, goals, activities, identity transition",
        "Skills sharing, community engagement",
        "Estate value, beneficiaries, charitable giving",
        "Annual gifting, 529 plans, tax-advantaged transfers",
        "Account inventory, document vault, executor planning",
    ]
    return "\n".join(
        f"{i}. {name} ({tool_id}): {desc}"
        for i, ((tool_id, name), desc) in enumerate(zip(TOOL_NAMES.items(), descriptions), start=1)
    )


SYSTEM_PROMPT_TEMPLATE = """You are the RetireWise Unified Retirement Plan Orchestrator, an expert retirement planning AI that synthesizes data from 12 specialized planning tools into a single, cohesive retirement plan.

YOUR MISSION:
Create a comprehensive, personalized retirement plan by connecting insights across all available data. Identify synergies, conflicts, gaps, and optimization opportunities that individual tools cannot see on their own.

THE 12 PLANNING TOOLS:
{tool_catalog}

RESPONSE FORMAT:
You MUST respond with valid JSON matching this exact structure:

{{
  "executiveSummary": "2-3 sentence overview of their retirement readiness and top opportunities",
  "retirementReadinessScore": <number 0-100>,
  "topPriorities": ["priority 1", "priority 2", "priority 3"],
  "sections": [
    {{
      "id": "<unique-id>",
      "title": "Section Title",
      "icon": "<heroicon-name>",
      "summary": "1-2 sentence overview",
      "details": ["detail point 1", "detail point 2"],
      "recommendations": ["specific recommendation 1", "specific recommendation 2"],
      "relatedTools": ["tool-id-1", "tool-id-2"],
      "confidence": "high|medium|low",
      "priority": "critical|high|medium|low"
    }}
  ],
  "warnings": [
    {{
      "id": "<unique-id>",
      "severity": "critical|warning|info",
      "title": "Warning Title",
      "description": "What the issue is",
      "actionRequired": "What they should do",
      "relatedTools": ["tool-id"]
    }}
  ],
  "synergies": [
    {{
      "title": "Synergy Title",
      "description": "How these tools work together",
      "tools": ["tool-name-1", "tool-name-2"],
      "potentialImpact": "$X,XXX/year or descriptive impact"
    }}
  ],
  "immediateActions": ["action 1", "action 2"],
  "shortTermActions": ["1-6 month action 1", "1-6 month action 2"],
  "longTermActions": ["6+ month action 1", "6+ month action 2"],
  "missingDataSuggestions": [
    {{
      "tool": "Tool Display Name",
      "toolId": "tool-id",
      "reason": "Why using this tool would help"
    }}
  ]
}}

SECTION GENERATION RULES:
- Generate sections based on AVAILABLE DATA ONLY; never fabricate sections for tools with no data
- Each section should reference SPECIFIC numbers from the user's data
- Use these icon names for sections: BanknotesIcon, ShieldCheckIcon, HeartIcon, GlobeAltIcon, MapIcon, ClockIcon, UserGroupIcon, SparklesIcon, DocumentTextIcon, GiftIcon, HomeIcon, CalculatorIcon
- Prioritize sections with cross-tool insights (where 2+ tools interact)
- Include a "Financial Overview" section that synthesizes income + tax + healthcare data
- Include a "Location Strategy" section if they have relocation or abroad data
- Include an "Estate & Legacy" section if they have legacy, gifting, or estate data

CROSS-TOOL INTELLIGENCE RULES:
- Social Security claiming age should be analyzed against longevity projections AND tax implications
- Healthcare costs should factor into income sufficiency AND location decisions
- Tax savings from relocation should be weighed against cost-of-living changes
- Gifting strategies should consider income sustainability AND estate tax exposure
- Volunteer/identity goals should factor into location choices
- Drawdown strategies should account for healthcare inflation AND longevity risk

SCORING RULES for retirementReadinessScore:
- 80-100: Well-prepared, minor optimizations possible
- 60-79: Good foundation, some important gaps to address
- 40-59: Moderate preparation, several areas need attention
- 20-39: Early stages, significant planning needed
- 0-19: Just getting started, critical areas unaddressed
- Factor in: data completeness, income sufficiency, healthcare coverage, tax efficiency, estate planning, longevity risk

WARNING RULES:
- CRITICAL: Income gap, healthcare coverage gap, estate tax exposure > $100K
- WARNING: Sub-optimal SS claiming, high tax burden without relocation plan, no longevity plan
- INFO: Incomplete data, optimization opportunities, lifestyle suggestions

IMPORTANT:
- Use ONLY data that exists; never invent numbers
- If data is limited, say so and recommend which tools to use
- Be specific with dollar amounts when data supports it
- Keep recommendations actionable and prioritized
- The response must be valid, parseable JSON with no markdown formatting or code blocks"""


def build_orchestrator_prompt(
    snapshot: ToolSnapshot,
    insights: Sequence[Insight],
    focus_areas: Optional[Sequence[str]] = None,
) -> Tuple[str, str]:
    """Returns (system_prompt, user_payload)."""
    system_prompt = SYSTEM_PROMPT_TEMPLATE.format(tool_catalog=_tool_catalog())

    parts = [build_data_snapshot_text(snapshot), format_insights_for_prompt(insights)]
    focus = [f.strip() for f in (focus_areas or []) if isinstance(f, str) and f.strip()]
    if focus:
        parts.append(
            f"USER FOCUS AREAS: The user wants to focus on: {', '.join(focus)}. "
            f"Give extra attention and detail to these areas in your analysis."
        )
    parts.append(USER_REQUEST)
    return system_prompt, "\n\n".join(parts)


# ------------------------ Result ------------------------ #

@dataclass
class GenerationResult:
    plan: Plan
    tier_used: str
    tokens_used: Optional[Dict[str, int]] = None
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out = {"plan": self.plan.to_dict(), "cached": self.cached, "tierUsed": self.tier_used}
        if self.tokens_used is not None:
            out["tokensUsed"] = dict(self.tokens_used)
        return out


# ------------------------ Orchestrator ------------------------ #

class PlanOrchestrator:
    def __init__(
        self,
        config: ProviderConfig,
        store: Optional[ToolDataStore] = None,
        cache: Optional[PlanCache] = None,
        gemini: Optional[GeminiProvider] = None,
        claude: Optional[ClaudeProvider] = None,
    ):
        self.config = config
        self.store = store
        self.cache = cache
        self.gemini = gemini or GeminiProvider(config)
        self.claude = claude or ClaudeProvider(config)

    def _available(self, provider: str) -> bool:
        return self.config.has_claude if provider == PROVIDER_CLAUDE else self.config.has_gemini

    def select_provider(self, tier: str) -> str:
        """Paid prefers Claude, free prefers Gemini; either falls back to the other if configured."""
        order = (PROVIDER_CLAUDE, PROVIDER_GEMINI) if tier == TIER_PAID else (PROVIDER_GEMINI, PROVIDER_CLAUDE)
        for provider in order:
            if self._available(provider):
                if provider != order[0]:
                    logger.info("Preferred provider %s not configured, using %s", order[0], provider)
                return provider
        raise NoProviderError(NO_PROVIDER_MESSAGE)

    async def fetch_tool_data(
        self, user_id: str, auth_token: str, tool_data: Optional[Mapping[str, Any]] = None
    ) -> Mapping[str, Any]:
        """Caller-supplied data wins; otherwise read the durable store. A store failure reads as no data."""
        if tool_data is not None:
            return tool_data
        if self.store is None:
            return {}
        try:
            return await self.store.load(user_id, auth_token)
        except ToolDataStoreError as e:
            logger.warning("Tool data fetch failed for %s: %s", user_id, e)
            return {}

    async def call_provider(self, tier: str, system_prompt: str, payload: str) -> Tuple[CompletionResult, str]:
        """Returns (completion, tier_used)."""
        provider = self.select_provider(tier)
        if provider == PROVIDER_GEMINI:
            return await self.gemini.complete(system_prompt, payload), TIER_FREE

        try:
            return await self.claude.complete(system_prompt, payload), TIER_PAID
        except ProviderCallError as e:
            # Only an auth failure moves the request to the other provider
            if e.kind is not ProviderErrorKind.AUTH or not self.config.has_gemini:
                raise
            logger.warning("Claude rejected credentials (%s); downgrading to Gemini", e.message)
        return await self.gemini.complete(system_prompt, payload), TIER_FREE

    async def generate(
        self,
        user_id: str,
        auth_token: str,
        tier: str = TIER_FREE,
        focus_areas: Optional[Sequence[str]] = None,
        tool_data: Optional[Mapping[str, Any]] = None,
    ) -> GenerationResult:
        raw = await self.fetch_tool_data(user_id, auth_token, tool_data)
        snapshot = normalize(raw)
        if not snapshot.tools_with_data:
            raise NoDataError(NO_DATA_MESSAGE, [dict(s) for s in DEFAULT_MISSING_DATA_SUGGESTIONS])

        insights = analyze(snapshot)
        logger.info(
            "Generating plan for %s: %d tools, %d%% complete, %d insights",
            user_id, len(snapshot.tools_with_data), snapshot.data_completeness, len(insights),
        )

        system_prompt, payload = build_orchestrator_prompt(snapshot, insights, focus_areas)
        completion, tier_used = await self.call_provider(tier, system_prompt, payload)

        plan = parse_plan_response(
            completion.text,
            model_used=completion.model,
            data_completeness=snapshot.data_completeness,
            tools_analyzed=snapshot.tools_with_data,
        )
        result = GenerationResult(plan=plan, tier_used=tier_used, tokens_used=completion.tokens_used)

        if self.cache is not None:
            try:
                await self.cache.store(
                    user_id, auth_token, plan, tier_used, completion.tokens_used, snapshot_signature(snapshot)
                )
            except CacheWriteError as e:
                logger.warning("Plan generated but not cached for %s: %s", user_id, e)
        return result

    async def current_signature(self, user_id: str, auth_token: str) -> Optional[str]:
        """Signature of the user's current tool data, or None when it cannot be read."""
        if self.store is None:
            return None
        try:
            raw = await self.store.load(user_id, auth_token)
        except ToolDataStoreError as e:
            logger.warning("Tool data fetch failed for %s: %s", user_id, e)
            return None
        return snapshot_signature(normalize(raw))


def analyze_tool_data(raw: Optional[Mapping[str, Any]]) -> Tuple[ToolSnapshot, List[Insight]]:
    """Normalize + analyze in one call, for the transient insights view."""
    snapshot = normalize(raw)
    return snapshot, analyze(snapshot)
