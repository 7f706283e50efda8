"""
Insight Analyzer - Cross-Tool Rule Engine

Scans a ToolSnapshot for patterns that only show up when two or more planning
tools are read together (tax vs relocation, claiming age vs longevity, estate
vs gifting, ...) and emits prioritized, dollar-quantified insights.

Every rule is a pure function snapshot -> list of insights. Rules do not see
each other's output; ordering is imposed once at the end by
(priority, impact, id), so the result does not depend on rule order.

Usage:
    from insights import analyze, format_insights_for_prompt

    insights = analyze(snapshot)
    prompt_block = format_insights_for_prompt(insights)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from tool_data import (
    DIGITAL_ESTATE_MANAGER,
    GIFTING_PLANNER,
    HEALTHCARE_COST,
    IDENTITY_BUILDER,
    INCOME_ESTIMATOR,
    LEGACY_VISUALIZER,
    LONGEVITY_PLANNER,
    RETIRE_ABROAD,
    SS_OPTIMIZER,
    STATE_RELOCATOR,
    TAX_ANALYZER,
    TOTAL_TOOLS,
    VOLUNTEER_MATCHER,
    DEFAULT_PLANNING_HORIZON,
    ToolSnapshot,
)

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

PRIORITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}

HIGH_TAX_STATES = frozenset({"CA", "NY", "NJ", "CT", "IL", "MA", "MN", "OR", "VT", "HI"})
NO_INCOME_TAX_STATES = ("FL", "TX", "NV", "WA", "WY", "SD", "TN", "NH", "AK")

# Cross-tool rules need at least this many populated domains
MIN_TOOLS_FOR_CROSS_TOOL = 2

THRESHOLDS = {
    "relocation_savings_min": 5000,
    "relocation_savings_high": 15000,
    "relocation_savings_medium": 10000,
    "high_state_tax": 10000,
    "high_effective_rate": 8.0,
    "abroad_savings_min": 10000,
    "abroad_savings_high": 20000,
    "abroad_healthcare_score_min": 70,
    "healthcare_income_ratio": 0.20,
    "ss_potential_with_income": 50000,
    "ss_potential_with_longevity": 30000,
    "early_claim_age": 67,
    "max_claim_age": 70,
    "long_lifespan": 85,
    "large_estate": 1000000,
    "gifting_gap_min": 20000,
    "estate_tax_critical": 100000,
    "low_hsa_balance": 20000,
    "lifetime_healthcare_high": 200000,
    "gift_income_ratio": 0.10,
    "profile_incomplete_pct": 50,
}

# Projection horizons (years) used to turn annual amounts into impact
HORIZONS = {
    "relocation_synergy": 20,
    "relocation_opportunity": 15,
    "abroad": 20,
    "gifting": 10,
}

ANNUAL_GIFT_EXCLUSION = 18000
FEDERAL_ESTATE_TAX_EXEMPTION = 13610000
FEDERAL_ESTATE_TAX_RATE = 0.40
HSA_MAX_CONTRIBUTION = 8300
HSA_TAX_SAVINGS_RATE = 0.30


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Insight:
    """A detected, prioritized, quantified opportunity."""
    id: str
    type: str
    priority: str  # critical | high | medium | low
    title: str
    description: str
    potential_impact: float = 0.0
    confidence_score: int = 50
    related_tools: Tuple[str, ...] = ()
    action_items: List[str] = field(default_factory=list)
    data_used: Dict[str, List[str]] = field(default_factory=dict)

    def __post_init__(self):
        self.potential_impact = max(0.0, float(self.potential_impact))
        self.related_tools = tuple(self.related_tools)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "potentialImpact": round(self.potential_impact, 2),
            "confidenceScore": self.confidence_score,
            "relatedTools": list(self.related_tools),
            "actionItems": list(self.action_items),
            "dataUsed": [{"toolId": k, "dataPoints": v} for k, v in self.data_used.items()],
        }


# =============================================================================
# HELPERS
# =============================================================================

def _money(amount: float) -> str:
    return f"${amount:,.0f}"


def _scaled_priority(value: float, high_threshold: float, medium_threshold: float) -> str:
    if value >= high_threshold:
        return "high"
    if value >= medium_threshold:
        return "medium"
    return "low"


def _planning_horizon(snapshot: ToolSnapshot) -> float:
    if snapshot.longevity and snapshot.longevity.planning_horizon > 0:
        return snapshot.longevity.planning_horizon
    return DEFAULT_PLANNING_HORIZON


def _state_tax_burden(snapshot: ToolSnapshot) -> float:
    """Reported state tax, else estimated from income and the effective rate."""
    tax = snapshot.tax
    if tax is None:
        return 0.0
    if tax.annual_state_tax > 0:
        return tax.annual_state_tax
    if snapshot.income and tax.effective_tax_rate > 0:
        return snapshot.income.total_annual_income * tax.effective_tax_rate / 100
    return 0.0


# =============================================================================
# CROSS-TOOL RULES
# =============================================================================

def tax_relocation_synergy(snapshot: ToolSnapshot) -> List[Insight]:
    tax, rel = snapshot.tax, snapshot.state_relocation
    if not tax or not rel or not rel.top_recommendation:
        return []

    savings = rel.annual_tax_savings or tax.potential_savings_by_state
    if savings <= THRESHOLDS["relocation_savings_min"]:
        return []

    target = rel.top_recommendation
    return [Insight(
        id="tax-relocation-synergy",
        type="tax-location",
        priority=_scaled_priority(
            savings, THRESHOLDS["relocation_savings_high"], THRESHOLDS["relocation_savings_medium"]
        ),
        title=f"Moving to {target} could save {_money(savings)}/year",
        description=(
            f"Your Tax Analyzer shows {_money(tax.annual_state_tax)}/year in "
            f"{tax.current_state or 'current'} state taxes. Your State Relocator analysis "
            f"ranks {target} first, and it offers significant tax savings."
        ),
        potential_impact=savings * HORIZONS["relocation_synergy"],
        confidence_score=85,
        related_tools=(TAX_ANALYZER, STATE_RELOCATOR),
        action_items=[
            f"Review the detailed comparison for {target} in State Relocator",
            "Use Tax Analyzer to model the specific tax impact",
            "Weigh cost of living differences against the tax savings",
            "Plan timing around any existing commitments",
        ],
        data_used={
            TAX_ANALYZER: ["currentState", "annualStateTax"],
            STATE_RELOCATOR: ["topRecommendation", "annualTaxSavings"],
        },
    )]


def tax_relocation_opportunity(snapshot: ToolSnapshot) -> List[Insight]:
    """High tax burden in a high-tax state and no relocation plan yet."""
    tax = snapshot.tax
    if not tax or snapshot.state_relocation or tax.current_state not in HIGH_TAX_STATES:
        return []

    burden = _state_tax_burden(snapshot)
    is_high_burden = (
        burden > THRESHOLDS["high_state_tax"]
        or tax.effective_tax_rate >= THRESHOLDS["high_effective_rate"]
    )
    if burden <= 0 or not is_high_burden:
        return []

    return [Insight(
        id="tax-relocation-opportunity",
        type="tax-location",
        priority="high",
        title=f"Consider tax-friendly states to reduce a {_money(burden)}/year state tax burden",
        description=(
            f"You're currently in {tax.current_state}, a high-tax state, with an effective rate of "
            f"{tax.effective_tax_rate:g}%. Many retirees save significantly by relocating to states "
            f"with no income tax such as {', '.join(NO_INCOME_TAX_STATES[:3])}."
        ),
        potential_impact=burden * HORIZONS["relocation_opportunity"],
        confidence_score=70,
        related_tools=(TAX_ANALYZER, STATE_RELOCATOR),
        action_items=[
            "Explore the State Relocator tool to compare options",
            "Consider family and lifestyle factors",
            "Research cost of living differences",
        ],
        data_used={TAX_ANALYZER: ["currentState", "effectiveTaxRate", "annualStateTax"]},
    )]


def healthcare_abroad_opportunity(snapshot: ToolSnapshot) -> List[Insight]:
    hc, abroad = snapshot.healthcare, snapshot.retire_abroad
    if not hc or not abroad or not abroad.top_country:
        return []

    savings = abroad.annual_savings_vs_current
    if savings <= THRESHOLDS["abroad_savings_min"]:
        return []
    if abroad.healthcare_score < THRESHOLDS["abroad_healthcare_score_min"]:
        return []

    country = abroad.top_country
    return [Insight(
        id="healthcare-abroad-opportunity",
        type="healthcare-location",
        priority=_scaled_priority(savings, THRESHOLDS["abroad_savings_high"], THRESHOLDS["abroad_savings_min"]),
        title=f"{country} offers quality healthcare at lower cost",
        description=(
            f"Your Retire Abroad analysis gives {country} a healthcare score of "
            f"{abroad.healthcare_score:g}/100 with potential annual savings of {_money(savings)}. "
            f"Your current US healthcare costs are {_money(hc.annual_cost)}/year."
        ),
        potential_impact=savings * HORIZONS["abroad"],
        confidence_score=65,
        related_tools=(HEALTHCARE_COST, RETIRE_ABROAD),
        action_items=[
            f"Research the healthcare system in {country}",
            "Compare Medicare costs with international health insurance",
            "Check visa requirements for healthcare access",
            "Factor in travel costs for family visits",
        ],
        data_used={
            HEALTHCARE_COST: ["monthlyPremium", "annualOutOfPocket"],
            RETIRE_ABROAD: ["topCountry", "healthcareScore", "annualSavingsVsCurrent"],
        },
    )]


def healthcare_income_gap(snapshot: ToolSnapshot) -> List[Insight]:
    """Healthcare spending that eats a large share of retirement income."""
    income, hc = snapshot.income, snapshot.healthcare
    if not income or not hc or income.total_annual_income <= 0:
        return []

    ratio = hc.annual_cost / income.total_annual_income
    if ratio <= THRESHOLDS["healthcare_income_ratio"]:
        return []

    horizon = _planning_horizon(snapshot)
    annual_gap = hc.annual_cost - income.total_annual_income * THRESHOLDS["healthcare_income_ratio"]
    return [Insight(
        id="healthcare-income-gap",
        type="income-gap",
        priority="critical",
        title=f"Healthcare costs take {ratio:.0%} of your retirement income",
        description=(
            f"Projected healthcare spending of {_money(hc.annual_cost)}/year against "
            f"{_money(income.total_annual_income)}/year of income leaves a coverage gap of about "
            f"{_money(annual_gap)}/year over a {horizon:g}-year horizon."
        ),
        potential_impact=annual_gap * horizon,
        confidence_score=75,
        related_tools=(INCOME_ESTIMATOR, HEALTHCARE_COST),
        action_items=[
            "Compare Medicare Advantage and Medigap options in the Healthcare Cost tool",
            "Identify additional income sources in the Income Estimator",
            "Fund an HSA while still eligible",
        ],
        data_used={
            INCOME_ESTIMATOR: ["totalAnnualIncome"],
            HEALTHCARE_COST: ["monthlyPremium", "annualOutOfPocket"],
        },
    )]


def income_ss_optimization(snapshot: ToolSnapshot) -> List[Insight]:
    income, ss = snapshot.income, snapshot.social_security
    if not income or not ss:
        return []

    potential = ss.lifetime_optimization_potential
    if potential <= THRESHOLDS["ss_potential_with_income"] or ss.current_claim_age >= THRESHOLDS["max_claim_age"]:
        return []

    return [Insight(
        id="income-ss-optimization",
        type="ss-timing",
        priority="high",
        title=f"Optimize Social Security claiming for {_money(potential)} in lifetime benefits",
        description=(
            f"Based on your Income Estimator data and Social Security analysis, delaying your claim "
            f"from age {ss.current_claim_age:g} to {ss.optimal_claim_age:g} could increase lifetime "
            f"benefits significantly over a {_planning_horizon(snapshot):g}-year planning horizon."
        ),
        potential_impact=potential,
        confidence_score=80,
        related_tools=(INCOME_ESTIMATOR, SS_OPTIMIZER),
        action_items=[
            "Review claiming scenarios in the SS Optimizer",
            "Calculate the break-even age for delayed claiming",
            "Consider spousal strategies if applicable",
        ],
        data_used={
            INCOME_ESTIMATOR: ["totalAnnualIncome"],
            SS_OPTIMIZER: ["currentClaimAge", "lifetimeOptimizationPotential"],
        },
    )]


def ss_longevity_mismatch(snapshot: ToolSnapshot) -> List[Insight]:
    ss, lon = snapshot.social_security, snapshot.longevity
    if not ss or not lon:
        return []

    if not (
        ss.current_claim_age < THRESHOLDS["early_claim_age"]
        and lon.projected_lifespan > THRESHOLDS["long_lifespan"]
        and ss.lifetime_optimization_potential > THRESHOLDS["ss_potential_with_longevity"]
    ):
        return []

    years_of_benefits = lon.projected_lifespan - ss.current_claim_age
    return [Insight(
        id="ss-longevity-mismatch",
        type="ss-timing",
        priority="high",
        title="Early Social Security claiming may cost you given your longevity projection",
        description=(
            f"You plan to claim at {ss.current_claim_age:g}, but your Longevity Planner projects "
            f"living to {lon.projected_lifespan:g}. With {years_of_benefits:g} years of benefits, "
            f"delaying could add {_money(ss.lifetime_optimization_potential)} to lifetime income."
        ),
        potential_impact=ss.lifetime_optimization_potential,
        confidence_score=75,
        related_tools=(SS_OPTIMIZER, LONGEVITY_PLANNER),
        action_items=[
            "Review claiming age scenarios in the SS Optimizer",
            "Consider bridge income sources to delay claiming",
            "Factor in health status and family history",
        ],
        data_used={
            SS_OPTIMIZER: ["currentClaimAge", "lifetimeOptimizationPotential"],
            LONGEVITY_PLANNER: ["projectedLifespan"],
        },
    )]


def missing_longevity_plan(snapshot: ToolSnapshot) -> List[Insight]:
    if snapshot.longevity or not (snapshot.income or snapshot.social_security):
        return []

    related = tuple(t for t in (INCOME_ESTIMATOR, SS_OPTIMIZER) if snapshot.has(t)) + (LONGEVITY_PLANNER,)
    return [Insight(
        id="missing-longevity-plan",
        type="longevity",
        priority="high",
        title="Your income plan has no longevity projection behind it",
        description=(
            "Income and claiming decisions depend on how long the money has to last. "
            "Without a longevity plan the risk of outliving your savings is unmeasured."
        ),
        potential_impact=0,
        confidence_score=70,
        related_tools=related,
        action_items=[
            "Run the Longevity & Drawdown Planner",
            "Set a planning horizon beyond your expected lifespan",
        ],
        data_used={
            t: points
            for t, points in ((INCOME_ESTIMATOR, ["totalAnnualIncome"]), (SS_OPTIMIZER, ["currentClaimAge"]))
            if snapshot.has(t)
        },
    )]


def estate_gifting_optimization(snapshot: ToolSnapshot) -> List[Insight]:
    legacy, gifting = snapshot.legacy, snapshot.gifting
    if not legacy or not gifting or legacy.total_estate_value <= THRESHOLDS["large_estate"]:
        return []

    max_annual = legacy.beneficiaries * ANNUAL_GIFT_EXCLUSION
    gap = max_annual - gifting.annual_gift_budget
    if gap <= THRESHOLDS["gifting_gap_min"]:
        return []

    return [Insight(
        id="estate-gifting-optimization",
        type="estate-gifting",
        priority="medium",
        title=f"Increase annual gifting by {_money(gap)} tax-free",
        description=(
            f"Your estate is valued at {_money(legacy.total_estate_value)} with {legacy.beneficiaries} "
            f"beneficiaries. You could gift up to {_money(max_annual)} annually tax-free "
            f"({legacy.beneficiaries} x {_money(ANNUAL_GIFT_EXCLUSION)}), reducing estate tax exposure."
        ),
        potential_impact=gap * HORIZONS["gifting"],
        confidence_score=80,
        related_tools=(LEGACY_VISUALIZER, GIFTING_PLANNER),
        action_items=[
            "Review gifting strategies in the Gifting Planner",
            "Consider 529 contributions for education",
            "Consult an estate planning attorney",
        ],
        data_used={
            LEGACY_VISUALIZER: ["totalEstateValue", "beneficiaries"],
            GIFTING_PLANNER: ["annualGiftBudget"],
        },
    )]


def estate_needs_gifting_plan(snapshot: ToolSnapshot) -> List[Insight]:
    legacy = snapshot.legacy
    if not legacy or snapshot.gifting or legacy.total_estate_value <= THRESHOLDS["large_estate"]:
        return []

    return [Insight(
        id="estate-needs-gifting-plan",
        type="estate-gifting",
        priority="medium",
        title=f"Consider a gifting strategy for your {_money(legacy.total_estate_value)} estate",
        description=(
            "With an estate valued over $1M, strategic gifting can reduce future estate taxes "
            "while providing for family members now."
        ),
        potential_impact=legacy.total_estate_value * 0.1,
        confidence_score=60,
        related_tools=(LEGACY_VISUALIZER, GIFTING_PLANNER),
        action_items=[
            "Explore the Gifting Planner tool",
            "Identify beneficiaries and their needs",
            "Review your estate plan with an attorney",
        ],
        data_used={LEGACY_VISUALIZER: ["totalEstateValue"]},
    )]


def estate_tax_exposure(snapshot: ToolSnapshot) -> List[Insight]:
    legacy = snapshot.legacy
    if not legacy or legacy.total_estate_value <= FEDERAL_ESTATE_TAX_EXEMPTION:
        return []

    exposure = (legacy.total_estate_value - FEDERAL_ESTATE_TAX_EXEMPTION) * FEDERAL_ESTATE_TAX_RATE
    return [Insight(
        id="estate-tax-exposure",
        type="estate-tax",
        priority="critical" if exposure > THRESHOLDS["estate_tax_critical"] else "medium",
        title=f"Estimated federal estate tax exposure of {_money(exposure)}",
        description=(
            f"Your estate of {_money(legacy.total_estate_value)} exceeds the "
            f"{_money(FEDERAL_ESTATE_TAX_EXEMPTION)} federal exemption. At a "
            f"{FEDERAL_ESTATE_TAX_RATE:.0%} rate the taxable excess could cost heirs {_money(exposure)}."
        ),
        potential_impact=exposure,
        confidence_score=70,
        related_tools=(LEGACY_VISUALIZER, GIFTING_PLANNER),
        action_items=[
            "Review lifetime gifting and trust strategies with an estate attorney",
            "Model accelerated gifting in the Gifting Planner",
        ],
        data_used={LEGACY_VISUALIZER: ["totalEstateValue"]},
    )]


def longevity_healthcare_funding(snapshot: ToolSnapshot) -> List[Insight]:
    lon, hc = snapshot.longevity, snapshot.healthcare
    if not lon or not hc:
        return []

    lifetime_cost = hc.annual_cost * lon.planning_horizon
    if hc.hsa_balance >= THRESHOLDS["low_hsa_balance"] or lifetime_cost <= THRESHOLDS["lifetime_healthcare_high"]:
        return []

    years_to_medicare = max(0.0, hc.medicare_eligible_age - (lon.projected_lifespan - lon.planning_horizon))
    hsa_growth = HSA_MAX_CONTRIBUTION * min(years_to_medicare, 10)

    return [Insight(
        id="longevity-healthcare-funding",
        type="longevity-healthcare",
        priority="medium",
        title=f"Plan for {_money(lifetime_cost)} in lifetime healthcare costs",
        description=(
            f"With a {lon.planning_horizon:g}-year planning horizon and healthcare costs of "
            f"{_money(hc.annual_cost)}/year, you'll need dedicated healthcare funding. Your HSA "
            f"balance of {_money(hc.hsa_balance)} is a start; maximizing contributions could add "
            f"{_money(hsa_growth)} in tax-advantaged savings."
        ),
        potential_impact=hsa_growth * HSA_TAX_SAVINGS_RATE,
        confidence_score=70,
        related_tools=(LONGEVITY_PLANNER, HEALTHCARE_COST),
        action_items=[
            "Maximize HSA contributions annually",
            "Invest HSA funds for long-term growth",
            "Consider long-term care insurance options",
        ],
        data_used={
            LONGEVITY_PLANNER: ["planningHorizon", "projectedLifespan"],
            HEALTHCARE_COST: ["monthlyPremium", "annualOutOfPocket", "hsaBalance"],
        },
    )]


def gifting_income_sustainability(snapshot: ToolSnapshot) -> List[Insight]:
    income, gifting = snapshot.income, snapshot.gifting
    if not income or not gifting or income.total_annual_income <= 0:
        return []

    limit = income.total_annual_income * THRESHOLDS["gift_income_ratio"]
    if gifting.annual_gift_budget <= limit:
        return []

    excess = gifting.annual_gift_budget - limit
    return [Insight(
        id="gifting-income-sustainability",
        type="estate-gifting",
        priority="medium",
        title=f"Annual gifting of {_money(gifting.annual_gift_budget)} may strain retirement income",
        description=(
            f"Your gift budget is {gifting.annual_gift_budget / income.total_annual_income:.0%} of "
            f"your {_money(income.total_annual_income)} annual income. Make sure gifting is funded "
            f"from surplus, not from money your own retirement depends on."
        ),
        potential_impact=excess * _planning_horizon(snapshot),
        confidence_score=60,
        related_tools=(INCOME_ESTIMATOR, GIFTING_PLANNER),
        action_items=[
            "Stress-test your income plan with the gift budget included",
            "Prefer gifting from assets above your planning horizon needs",
        ],
        data_used={
            INCOME_ESTIMATOR: ["totalAnnualIncome"],
            GIFTING_PLANNER: ["annualGiftBudget"],
        },
    )]


def identity_volunteer_purpose(snapshot: ToolSnapshot) -> List[Insight]:
    ident = snapshot.identity
    if not ident or snapshot.volunteering or not (ident.retirement_goals or ident.activity_preferences):
        return []

    return [Insight(
        id="identity-volunteer-purpose",
        type="lifestyle",
        priority="low",
        title="Turn your retirement goals into community impact",
        description=(
            "Your Retirement Identity Builder lists goals and activities that volunteer roles "
            "can put into practice. The Volunteer Matchmaker can find roles that fit them."
        ),
        potential_impact=0,
        confidence_score=60,
        related_tools=(IDENTITY_BUILDER, VOLUNTEER_MATCHER),
        action_items=["Use the Volunteer Purpose Matchmaker with your identity goals"],
        data_used={IDENTITY_BUILDER: ["retirementGoals", "activityPreferences"]},
    )]


def digital_legacy_gap(snapshot: ToolSnapshot) -> List[Insight]:
    legacy, digital = snapshot.legacy, snapshot.digital_estate
    if not legacy or (digital and digital.digital_assets_count > 0):
        return []

    return [Insight(
        id="digital-legacy-gap",
        type="estate-digital",
        priority="low",
        title="Add digital accounts to your estate plan",
        description=(
            "Your legacy plan covers financial assets but no digital accounts are inventoried. "
            "Executors often cannot reach online accounts without instructions."
        ),
        potential_impact=0,
        confidence_score=55,
        related_tools=(LEGACY_VISUALIZER, DIGITAL_ESTATE_MANAGER),
        action_items=["Inventory your online accounts in the Digital Estate Manager"],
        data_used={LEGACY_VISUALIZER: ["totalEstateValue"]},
    )]


# =============================================================================
# GENERAL RULES (always evaluated)
# =============================================================================

def get_started(snapshot: ToolSnapshot) -> List[Insight]:
    if snapshot.income or snapshot.social_security:
        return []

    return [Insight(
        id="get-started",
        type="general-planning",
        priority="medium",
        title="Start with your retirement income picture",
        description=(
            "Income and Social Security are the foundation every other recommendation builds on. "
            "Start with these tools for a comprehensive view of your retirement readiness."
        ),
        potential_impact=0,
        confidence_score=100,
        related_tools=(INCOME_ESTIMATOR, SS_OPTIMIZER, TAX_ANALYZER, HEALTHCARE_COST),
        action_items=[
            "Use the Income Estimator to project retirement income",
            "Optimize your Social Security claiming strategy",
            "Analyze tax implications in retirement",
        ],
    )]


def complete_profile(snapshot: ToolSnapshot) -> List[Insight]:
    if snapshot.data_completeness >= THRESHOLDS["profile_incomplete_pct"]:
        return []

    used = len(snapshot.tools_with_data)
    return [Insight(
        id="complete-profile",
        type="general-planning",
        priority="low",
        title=f"Complete your retirement profile ({snapshot.data_completeness}% done)",
        description=(
            f"You've used {used} of {TOTAL_TOOLS} planning tools. More tools let the orchestrator "
            f"find cross-tool optimization opportunities."
        ),
        potential_impact=0,
        confidence_score=100,
        action_items=[
            "Try the Income Estimator to project retirement income",
            "Use the Social Security Optimizer for claiming strategy",
            "Estimate healthcare costs with the Healthcare Cost tool",
        ],
    )]


Rule = Callable[[ToolSnapshot], List[Insight]]

CROSS_TOOL_RULES: Tuple[Rule, ...] = (
    tax_relocation_synergy,
    tax_relocation_opportunity,
    healthcare_abroad_opportunity,
    healthcare_income_gap,
    income_ss_optimization,
    ss_longevity_mismatch,
    missing_longevity_plan,
    estate_gifting_optimization,
    estate_needs_gifting_plan,
    estate_tax_exposure,
    longevity_healthcare_funding,
    gifting_income_sustainability,
    identity_volunteer_purpose,
    digital_legacy_gap,
)

GENERAL_RULES: Tuple[Rule, ...] = (get_started, complete_profile)


# =============================================================================
# PUBLIC API
# =============================================================================

def sort_insights(insights: Sequence[Insight]) -> List[Insight]:
    """Priority rank desc, then impact desc, then id for a total order."""
    return sorted(
        insights,
        key=lambda i: (-PRIORITY_RANK.get(i.priority, 0), -i.potential_impact, i.id),
    )


def analyze(snapshot: ToolSnapshot, rules: Optional[Sequence[Rule]] = None) -> List[Insight]:
    """
    Run every applicable rule against the snapshot and return sorted insights.

    With fewer than two populated tools only the general rules run. A rule that
    fails is logged and contributes nothing.
    """
    active: List[Rule] = list(GENERAL_RULES)
    if len(snapshot.tools_with_data) >= MIN_TOOLS_FOR_CROSS_TOOL:
        active.extend(rules if rules is not None else CROSS_TOOL_RULES)

    found: List[Insight] = []
    for rule in active:
        try:
            found.extend(rule(snapshot))
        except Exception as e:
            logger.warning("Insight rule %s failed: %s", getattr(rule, "__name__", rule), e)
    return sort_insights(found)


def format_insights_for_prompt(insights: Sequence[Insight], limit: int = 5) -> str:
    if not insights:
        return (
            "No cross-tool optimization opportunities detected yet. "
            "More data from additional tools would help identify opportunities."
        )

    lines = ["## Cross-Tool Optimization Opportunities", ""]
    for insight in list(insights)[:limit]:
        lines.append(f"### [{insight.priority.upper()}] {insight.title}")
        lines.append(f"- Potential Impact: {_money(insight.potential_impact)}")
        if insight.related_tools:
            lines.append(f"- Tools: {', '.join(insight.related_tools)}")
        lines.append(f"- {insight.description}")
        lines.append("")
    return "\n".join(lines)


def high_priority_count(insights: Sequence[Insight]) -> int:
    """Badge count: critical + high."""
    return sum(1 for i in insights if i.priority in ("critical", "high"))


def has_new_insights(previous: Sequence[Insight], current: Sequence[Insight]) -> bool:
    """True when insights appear for the first time or a new high/critical one shows up."""
    if not previous:
        return len(current) > 0
    seen = {i.id for i in previous}
    return any(i.id not in seen and i.priority in ("critical", "high") for i in current)
