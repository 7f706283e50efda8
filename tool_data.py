"""
Tool Data Normalizer

Turns the per-tool records saved by the twelve planning tools into one typed,
immutable ToolSnapshot. Each tool writes its own loosely-shaped JSON, and older
tool versions used different field names, so every domain transform reads the
known alternates and fills documented defaults.

Usage:
    from tool_data import normalize, build_data_snapshot_text

    snapshot = normalize(raw_records)   # {tool_id: {"data": {...}, "createdAt": "..."}}
    snapshot.tools_with_data            # ("income-estimator", "tax-analyzer")
    snapshot.data_completeness          # 17

Normalization never raises: a tool whose record cannot be transformed is
logged and treated as having no data.
"""

import math
import logging
from types import MappingProxyType
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# =============================================================================
# TOOL IDENTIFIERS
# =============================================================================

INCOME_ESTIMATOR = "income-estimator"
SS_OPTIMIZER = "ss-optimizer"
TAX_ANALYZER = "tax-analyzer"
HEALTHCARE_COST = "healthcare-cost"
RETIRE_ABROAD = "retire-abroad"
STATE_RELOCATOR = "state-relocator"
LONGEVITY_PLANNER = "longevity-planner"
IDENTITY_BUILDER = "retirement-identity-builder"
VOLUNTEER_MATCHER = "volunteer-matcher"
LEGACY_VISUALIZER = "legacy-flow-visualizer"
GIFTING_PLANNER = "gifting-planner"
DIGITAL_ESTATE_MANAGER = "digital-estate-manager"

# Canonical order; also the order of ToolSnapshot.tools_with_data
TOOL_IDS: Tuple[str, ...] = (
    INCOME_ESTIMATOR,
    SS_OPTIMIZER,
    TAX_ANALYZER,
    HEALTHCARE_COST,
    RETIRE_ABROAD,
    STATE_RELOCATOR,
    LONGEVITY_PLANNER,
    IDENTITY_BUILDER,
    VOLUNTEER_MATCHER,
    LEGACY_VISUALIZER,
    GIFTING_PLANNER,
    DIGITAL_ESTATE_MANAGER,
)

# Records saved by older tool builds under their previous ids
LEGACY_TOOL_IDS = {
    IDENTITY_BUILDER: "identity-builder",
    LEGACY_VISUALIZER: "legacy-visualizer",
    DIGITAL_ESTATE_MANAGER: "estate-manager",
}

TOOL_NAMES = {
    INCOME_ESTIMATOR: "Income Estimator",
    SS_OPTIMIZER: "Social Security Optimizer",
    TAX_ANALYZER: "Tax Impact Analyzer",
    HEALTHCARE_COST: "Healthcare Cost Estimator",
    RETIRE_ABROAD: "Retire Abroad",
    STATE_RELOCATOR: "State Relocator",
    LONGEVITY_PLANNER: "Longevity & Drawdown Planner",
    IDENTITY_BUILDER: "Retirement Identity Builder",
    VOLUNTEER_MATCHER: "Volunteer Purpose Matchmaker",
    LEGACY_VISUALIZER: "Legacy Flow Visualizer",
    GIFTING_PLANNER: "Gifting Strategy Planner",
    DIGITAL_ESTATE_MANAGER: "Digital Estate Manager",
}

# Reserved id under which the orchestrator stores its own plan artifact
ORCHESTRATOR_PLAN_TOOL_ID = "orchestrator-plan"

TOTAL_TOOLS = len(TOOL_IDS)

DEFAULT_CLAIM_AGE = 62
DEFAULT_OPTIMAL_CLAIM_AGE = 70
DEFAULT_MEDICARE_AGE = 65
DEFAULT_LIFESPAN = 85
DEFAULT_PLANNING_HORIZON = 25


# =============================================================================
# RAW RECORDS
# =============================================================================

@dataclass
class RawToolRecord:
    """One stored tool record as it comes back from the durable store."""
    data: Any
    created_at: Optional[str] = None

    @classmethod
    def coerce(cls, value: Any) -> "RawToolRecord":
        """Accept a RawToolRecord or the store's dict shape ({data, createdAt|created})."""
        if isinstance(value, RawToolRecord):
            return value
        if isinstance(value, Mapping) and "data" in value:
            created = value.get("createdAt") or value.get("created")
            return cls(data=value.get("data"), created_at=created if isinstance(created, str) else None)
        return cls(data=value)


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _to_number(value: Any) -> Optional[float]:
    """
    Parse a numeric field. Currency strings like "$40,000" are accepted.

    Returns None for missing or unparseable text. Raises TypeError for values
    that can never be a number (lists, dicts, booleans) so the whole tool
    record is treated as malformed.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"expected a number, got bool {value!r}")
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        return float(value)
    if isinstance(value, str):
        s = value.strip().replace(",", "").replace("$", "")
        if not s:
            return None
        try:
            parsed = float(s)
        except ValueError:
            return None
        return None if math.isnan(parsed) or math.isinf(parsed) else parsed
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _first(data: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _num(data: Mapping[str, Any], *keys: str, default: float = 0.0) -> float:
    for key in keys:
        parsed = _to_number(data.get(key))
        if parsed is not None:
            return parsed
    return default


def _str(data: Mapping[str, Any], *keys: str, default: str = "") -> str:
    value = _first(data, keys)
    return value if isinstance(value, str) else default


def _str_list(data: Mapping[str, Any], *keys: str) -> Tuple[str, ...]:
    value = _first(data, keys)
    if isinstance(value, (list, tuple)):
        return tuple(item for item in value if isinstance(item, str))
    return ()


def _count(data: Mapping[str, Any], *keys: str) -> int:
    """Count fields that tools store either as a number or as the list itself."""
    value = _first(data, keys)
    if isinstance(value, (list, tuple)):
        return len(value)
    return int(_to_number(value) or 0)


def _nested(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


def _is_populated(value: Any) -> bool:
    return value is not None and value != "" and value != [] and value != {}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


class _DomainRecord:
    """Shared camelCase serialization for the domain dataclasses."""

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[_camel(f.name)] = list(value) if isinstance(value, tuple) else value
        return out


# =============================================================================
# DOMAIN RECORDS
# =============================================================================

@dataclass(frozen=True)
class IncomeData(_DomainRecord):
    total_annual_income: float = 0.0
    social_security_income: float = 0.0
    pension_income: float = 0.0
    investment_income: float = 0.0
    other_income: float = 0.0
    scenario_count: int = 0
    active_scenario_id: str = ""


@dataclass(frozen=True)
class SocialSecurityData(_DomainRecord):
    current_claim_age: float = DEFAULT_CLAIM_AGE
    optimal_claim_age: float = DEFAULT_OPTIMAL_CLAIM_AGE
    monthly_benefit_at_current: float = 0.0
    monthly_benefit_at_optimal: float = 0.0
    lifetime_optimization_potential: float = 0.0
    spousal_strategy: str = ""
    spousal_benefit: float = 0.0


@dataclass(frozen=True)
class TaxData(_DomainRecord):
    current_state: str = ""
    effective_tax_rate: float = 0.0
    annual_state_tax: float = 0.0
    annual_federal_tax: float = 0.0
    total_annual_tax: float = 0.0
    potential_savings_by_state: float = 0.0


@dataclass(frozen=True)
class HealthcareData(_DomainRecord):
    monthly_premium: float = 0.0
    annual_out_of_pocket: float = 0.0
    lifetime_projected_cost: float = 0.0
    hsa_balance: float = 0.0
    medicare_eligible_age: float = DEFAULT_MEDICARE_AGE
    current_plan_type: str = ""

    @property
    def annual_cost(self) -> float:
        return self.monthly_premium * 12 + self.annual_out_of_pocket


@dataclass(frozen=True)
class RetireAbroadData(_DomainRecord):
    considered_countries: Tuple[str, ...] = ()
    top_country: str = ""
    monthly_cost_of_living: float = 0.0
    annual_savings_vs_current: float = 0.0
    healthcare_score: float = 0.0
    quality_of_life_score: float = 0.0
    visa_requirements: str = ""


@dataclass(frozen=True)
class StateRelocationData(_DomainRecord):
    current_state: str = ""
    target_states: Tuple[str, ...] = ()
    top_recommendation: str = ""
    annual_tax_savings: float = 0.0
    cost_of_living_delta: float = 0.0
    recommendation_score: float = 0.0
    recommendation_reasons: Tuple[str, ...] = ()
    move_date: str = ""
    is_retired: bool = False


@dataclass(frozen=True)
class LongevityData(_DomainRecord):
    projected_lifespan: float = DEFAULT_LIFESPAN
    health_score: float = 0.0
    planning_horizon: float = DEFAULT_PLANNING_HORIZON
    longevity_factors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class IdentityData(_DomainRecord):
    retirement_goals: Tuple[str, ...] = ()
    activity_preferences: Tuple[str, ...] = ()
    purpose_score: float = 0.0
    top_priorities: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VolunteeringData(_DomainRecord):
    matched_opportunities: int = 0
    weekly_hours_committed: float = 0.0
    skills_to_share: Tuple[str, ...] = ()
    interest_areas: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LegacyData(_DomainRecord):
    total_estate_value: float = 0.0
    beneficiaries: int = 0
    charitable_giving_planned: float = 0.0
    estate_plan_complete: bool = False


@dataclass(frozen=True)
class GiftingData(_DomainRecord):
    annual_gift_budget: float = 0.0
    tax_advantaged_gifts: float = 0.0
    education_funds_529: float = 0.0
    recipient_count: int = 0


@dataclass(frozen=True)
class DigitalEstateData(_DomainRecord):
    digital_assets_count: int = 0
    documents_uploaded: int = 0
    passwords_stored: int = 0
    last_updated: str = ""


# =============================================================================
# PER-TOOL TRANSFORMS
# =============================================================================

def _income(d: Mapping[str, Any]) -> IncomeData:
    scenarios = d.get("scenarios")
    return IncomeData(
        total_annual_income=_num(d, "totalIncome", "totalAnnualIncome"),
        social_security_income=_num(d, "socialSecurity", "socialSecurityIncome"),
        pension_income=_num(d, "pension", "pensionIncome"),
        investment_income=_num(d, "investments", "investmentIncome"),
        other_income=_num(d, "otherIncome"),
        scenario_count=len(scenarios) if isinstance(scenarios, list) else 0,
        active_scenario_id=_str(d, "activeScenario", "activeScenarioId"),
    )


def _social_security(d: Mapping[str, Any]) -> SocialSecurityData:
    return SocialSecurityData(
        current_claim_age=_num(d, "claimAge", "currentClaimAge", default=DEFAULT_CLAIM_AGE),
        optimal_claim_age=_num(d, "optimalClaimAge", default=DEFAULT_OPTIMAL_CLAIM_AGE),
        monthly_benefit_at_current=_num(d, "estimatedBenefit", "monthlyBenefitAtCurrent"),
        monthly_benefit_at_optimal=_num(d, "monthlyBenefitAtOptimal"),
        lifetime_optimization_potential=_num(d, "optimizationPotential", "lifetimeOptimizationPotential"),
        spousal_strategy=_str(d, "spousalStrategy"),
        spousal_benefit=_num(d, "spousalBenefit"),
    )


def _tax(d: Mapping[str, Any]) -> TaxData:
    return TaxData(
        current_state=_str(d, "state", "currentState").upper(),
        effective_tax_rate=_num(d, "effectiveTaxRate"),
        annual_state_tax=_num(d, "annualTax", "annualStateTax"),
        annual_federal_tax=_num(d, "federalTax", "annualFederalTax"),
        total_annual_tax=_num(d, "totalTax", "totalAnnualTax"),
        potential_savings_by_state=_num(d, "potentialSavings", "potentialSavingsByState"),
    )


def _healthcare(d: Mapping[str, Any]) -> HealthcareData:
    return HealthcareData(
        monthly_premium=_num(d, "monthlyPremium"),
        annual_out_of_pocket=_num(d, "outOfPocket", "annualOutOfPocket"),
        lifetime_projected_cost=_num(d, "lifetimeProjectedCost", "lifetimeCost"),
        hsa_balance=_num(d, "hsaBalance"),
        medicare_eligible_age=_num(d, "medicareAge", "medicareEligibleAge", default=DEFAULT_MEDICARE_AGE),
        current_plan_type=_str(d, "planType", "currentPlanType"),
    )


def _retire_abroad(d: Mapping[str, Any]) -> RetireAbroadData:
    return RetireAbroadData(
        considered_countries=_str_list(d, "consideredCountries", "countries"),
        top_country=_str(d, "topCountry", "selectedCountry"),
        monthly_cost_of_living=_num(d, "monthlyCostOfLiving", "costOfLiving"),
        annual_savings_vs_current=_num(d, "annualSavings", "annualSavingsVsCurrent"),
        healthcare_score=_num(d, "healthcareScore"),
        quality_of_life_score=_num(d, "qualityOfLifeScore", "qolScore"),
        visa_requirements=_str(d, "visaRequirements", "visa"),
    )


def _state_relocation(d: Mapping[str, Any]) -> StateRelocationData:
    # The relocator stores its form, its pick and its summary as nested objects
    form = _nested(d, "formData")
    recommended = _nested(d, "recommendedState")
    summary = _nested(d, "summary")

    target_states = _str_list(form, "targetStates") or _str_list(d, "targetStates")
    reasons = _str_list(recommended, "reasons") or _str_list(summary, "reasons")
    employment = _str(form, "employmentStatus").lower()
    planning = _str(form, "planningRetirement").lower()

    return StateRelocationData(
        current_state=(_str(form, "currentState") or _str(d, "currentState")).upper(),
        target_states=target_states,
        top_recommendation=_str(recommended, "targetState", "state") or _str(d, "topRecommendation"),
        annual_tax_savings=_num(recommended, "annualSavings", "annualTaxSavings") or _num(d, "annualTaxSavings"),
        cost_of_living_delta=_num(recommended, "costOfLivingDiff") or _num(summary, "costOfLivingDiff"),
        recommendation_score=_num(recommended, "score") or _num(summary, "score"),
        recommendation_reasons=reasons,
        move_date=_str(form, "moveDate") or _str(d, "moveDate"),
        is_retired=employment == "retired" or planning == "yes",
    )


def _longevity(d: Mapping[str, Any]) -> LongevityData:
    return LongevityData(
        projected_lifespan=_num(d, "projectedLifespan", "lifeExpectancy", default=DEFAULT_LIFESPAN),
        health_score=_num(d, "healthScore"),
        planning_horizon=_num(d, "planningHorizon", "horizon", default=DEFAULT_PLANNING_HORIZON),
        longevity_factors=_str_list(d, "longevityFactors", "factors"),
    )


def _identity(d: Mapping[str, Any]) -> IdentityData:
    return IdentityData(
        retirement_goals=_str_list(d, "retirementGoals", "goals"),
        activity_preferences=_str_list(d, "activityPreferences", "activities"),
        purpose_score=_num(d, "purposeScore"),
        top_priorities=_str_list(d, "topPriorities", "priorities"),
    )


def _volunteering(d: Mapping[str, Any]) -> VolunteeringData:
    return VolunteeringData(
        matched_opportunities=_count(d, "matchedOpportunities", "matches"),
        weekly_hours_committed=_num(d, "weeklyHours", "weeklyHoursCommitted"),
        skills_to_share=_str_list(d, "skills", "skillsToShare"),
        interest_areas=_str_list(d, "interests", "interestAreas"),
    )


def _legacy(d: Mapping[str, Any]) -> LegacyData:
    return LegacyData(
        total_estate_value=_num(d, "totalEstateValue", "estateValue"),
        beneficiaries=_count(d, "beneficiaries", "beneficiaryCount"),
        charitable_giving_planned=_num(d, "charitableGiving", "charitableGivingPlanned"),
        estate_plan_complete=bool(_first(d, ("estatePlanComplete", "planComplete"))),
    )


def _gifting(d: Mapping[str, Any]) -> GiftingData:
    return GiftingData(
        annual_gift_budget=_num(d, "annualGiftBudget", "giftBudget"),
        tax_advantaged_gifts=_num(d, "taxAdvantagedGifts"),
        education_funds_529=_num(d, "educationFunds", "educationFunds529"),
        recipient_count=_count(d, "recipients", "recipientCount"),
    )


def _digital_estate(d: Mapping[str, Any]) -> DigitalEstateData:
    return DigitalEstateData(
        digital_assets_count=_count(d, "digitalAssets", "digitalAssetsCount"),
        documents_uploaded=_count(d, "documents", "documentsUploaded"),
        passwords_stored=_count(d, "passwords", "passwordsStored"),
        last_updated=_str(d, "lastUpdated"),
    )


# tool id -> (ToolSnapshot attribute, transform)
DOMAIN_TRANSFORMS: Dict[str, Tuple[str, Callable[[Mapping[str, Any]], Any]]] = {
    INCOME_ESTIMATOR: ("income", _income),
    SS_OPTIMIZER: ("social_security", _social_security),
    TAX_ANALYZER: ("tax", _tax),
    HEALTHCARE_COST: ("healthcare", _healthcare),
    RETIRE_ABROAD: ("retire_abroad", _retire_abroad),
    STATE_RELOCATOR: ("state_relocation", _state_relocation),
    LONGEVITY_PLANNER: ("longevity", _longevity),
    IDENTITY_BUILDER: ("identity", _identity),
    VOLUNTEER_MATCHER: ("volunteering", _volunteering),
    LEGACY_VISUALIZER: ("legacy", _legacy),
    GIFTING_PLANNER: ("gifting", _gifting),
    DIGITAL_ESTATE_MANAGER: ("digital_estate", _digital_estate),
}


# =============================================================================
# SNAPSHOT
# =============================================================================

def completeness_for(tool_count: int) -> int:
    """round(100 * n / 12), rounding halves up."""
    return int(math.floor(100 * tool_count / TOTAL_TOOLS + 0.5))


@dataclass(frozen=True)
class ToolSnapshot:
    """Normalized view of one user's tool data at one point in time."""
    income: Optional[IncomeData] = None
    social_security: Optional[SocialSecurityData] = None
    tax: Optional[TaxData] = None
    healthcare: Optional[HealthcareData] = None
    retire_abroad: Optional[RetireAbroadData] = None
    state_relocation: Optional[StateRelocationData] = None
    longevity: Optional[LongevityData] = None
    identity: Optional[IdentityData] = None
    volunteering: Optional[VolunteeringData] = None
    legacy: Optional[LegacyData] = None
    gifting: Optional[GiftingData] = None
    digital_estate: Optional[DigitalEstateData] = None
    tools_with_data: Tuple[str, ...] = ()
    data_completeness: int = 0
    last_updated: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def has(self, tool_id: str) -> bool:
        return tool_id in self.tools_with_data

    def to_dict(self, include_timestamps: bool = True) -> Dict[str, Any]:
        """Canonical camelCase form used for prompts, hashing and JSON responses."""
        out: Dict[str, Any] = {}
        for attr, _ in DOMAIN_TRANSFORMS.values():
            record = getattr(self, attr)
            out[_camel(attr)] = record.to_dict() if record is not None else None
        out["toolsWithData"] = list(self.tools_with_data)
        out["dataCompleteness"] = self.data_completeness
        if include_timestamps:
            out["lastUpdated"] = dict(self.last_updated)
        return out


def _lookup(raw: Mapping[str, Any], tool_id: str) -> Any:
    if tool_id in raw:
        return raw[tool_id]
    legacy_id = LEGACY_TOOL_IDS.get(tool_id)
    if legacy_id and legacy_id in raw:
        return raw[legacy_id]
    return None


def normalize(raw: Optional[Mapping[str, Any]]) -> ToolSnapshot:
    """
    Build a ToolSnapshot from a {tool_id: RawToolRecord | dict} map.

    A tool is included only when its record exists, its data is a mapping with
    at least one populated value, and its transform succeeds. Any failure is
    contained to that tool.
    """
    raw = raw or {}
    domains: Dict[str, Any] = {}
    tools_with_data: List[str] = []
    last_updated: Dict[str, str] = {}

    for tool_id in TOOL_IDS:
        value = _lookup(raw, tool_id)
        if value is None:
            continue
        attr, transform = DOMAIN_TRANSFORMS[tool_id]
        try:
            record = RawToolRecord.coerce(value)
            if not isinstance(record.data, Mapping):
                raise TypeError(f"data must be an object, got {type(record.data).__name__}")
            if not any(_is_populated(v) for v in record.data.values()):
                continue
            domains[attr] = transform(record.data)
        except Exception as e:
            logger.warning("Skipping malformed %s record: %s", tool_id, e)
            continue
        tools_with_data.append(tool_id)
        if record.created_at:
            last_updated[tool_id] = record.created_at

    return ToolSnapshot(
        tools_with_data=tuple(tools_with_data),
        data_completeness=completeness_for(len(tools_with_data)),
        last_updated=MappingProxyType(last_updated),
        **domains,
    )


# =============================================================================
# PROMPT TEXT
# =============================================================================

def _money(amount: float) -> str:
    return f"${amount:,.0f}"


def _fmt(value: float) -> str:
    return f"{value:g}"


def build_data_snapshot_text(snapshot: ToolSnapshot) -> str:
    """Markdown summary of every populated domain, for the LLM prompt."""
    lines = [f"## User Retirement Data ({snapshot.data_completeness}% complete)", ""]

    if snapshot.income:
        inc = snapshot.income
        lines.append("### Income Sources")
        lines.append(f"- Total Annual Income: {_money(inc.total_annual_income)}")
        for label, amount in (
            ("Social Security", inc.social_security_income),
            ("Pension", inc.pension_income),
            ("Investments", inc.investment_income),
            ("Other", inc.other_income),
        ):
            if amount > 0:
                lines.append(f"- {label}: {_money(amount)}/year")
        lines.append("")

    if snapshot.social_security:
        ss = snapshot.social_security
        lines.append("### Social Security")
        lines.append(f"- Current Claim Age Plan: {_fmt(ss.current_claim_age)}")
        lines.append(f"- Optimal Claim Age: {_fmt(ss.optimal_claim_age)}")
        lines.append(f"- Monthly Benefit at Current Age: {_money(ss.monthly_benefit_at_current)}")
        if ss.monthly_benefit_at_optimal > 0:
            lines.append(f"- Monthly Benefit at Optimal Age: {_money(ss.monthly_benefit_at_optimal)}")
        if ss.lifetime_optimization_potential > 0:
            lines.append(f"- Optimization Potential: {_money(ss.lifetime_optimization_potential)} lifetime")
        if ss.spousal_strategy:
            lines.append(f"- Spousal Strategy: {ss.spousal_strategy}")
        lines.append("")

    if snapshot.tax:
        tax = snapshot.tax
        lines.append("### Tax Information")
        lines.append(f"- Current State: {tax.current_state or 'Unknown'}")
        lines.append(f"- Effective Tax Rate: {_fmt(tax.effective_tax_rate)}%")
        lines.append(f"- Annual State Tax: {_money(tax.annual_state_tax)}")
        lines.append(f"- Annual Federal Tax: {_money(tax.annual_federal_tax)}")
        if tax.potential_savings_by_state > 0:
            lines.append(f"- Potential Savings by Relocating: {_money(tax.potential_savings_by_state)}/year")
        lines.append("")

    if snapshot.healthcare:
        hc = snapshot.healthcare
        lines.append("### Healthcare")
        lines.append(f"- Monthly Premium: {_money(hc.monthly_premium)}")
        lines.append(f"- Annual Out-of-Pocket: {_money(hc.annual_out_of_pocket)}")
        if hc.lifetime_projected_cost > 0:
            lines.append(f"- Lifetime Projected Cost: {_money(hc.lifetime_projected_cost)}")
        if hc.hsa_balance > 0:
            lines.append(f"- HSA Balance: {_money(hc.hsa_balance)}")
        lines.append(f"- Medicare Eligible Age: {_fmt(hc.medicare_eligible_age)}")
        lines.append("")

    if snapshot.state_relocation:
        rel = snapshot.state_relocation
        lines.append("### Relocation Planning")
        lines.append(f"- Current State: {rel.current_state or 'Unknown'}")
        if rel.target_states:
            lines.append(f"- Considering: {', '.join(rel.target_states)}")
        if rel.top_recommendation:
            lines.append(f"- Top Recommendation: {rel.top_recommendation}")
            lines.append(f"- Annual Tax Savings: {_money(rel.annual_tax_savings)}")
        if rel.move_date:
            lines.append(f"- Planned Move: {rel.move_date}")
        lines.append("")

    if snapshot.retire_abroad:
        ab = snapshot.retire_abroad
        lines.append("### International Options")
        if ab.considered_countries:
            lines.append(f"- Countries Considered: {', '.join(ab.considered_countries)}")
        if ab.top_country:
            lines.append(f"- Top Country: {ab.top_country}")
            lines.append(f"- Annual Savings vs US: {_money(ab.annual_savings_vs_current)}")
            lines.append(f"- Healthcare Score: {_fmt(ab.healthcare_score)}/100")
        lines.append("")

    if snapshot.longevity:
        lon = snapshot.longevity
        lines.append("### Longevity Planning")
        lines.append(f"- Projected Lifespan: {_fmt(lon.projected_lifespan)} years")
        lines.append(f"- Planning Horizon: {_fmt(lon.planning_horizon)} years")
        if lon.longevity_factors:
            lines.append(f"- Factors: {', '.join(lon.longevity_factors)}")
        lines.append("")

    if snapshot.identity:
        ident = snapshot.identity
        lines.append("### Retirement Identity")
        if ident.retirement_goals:
            lines.append(f"- Goals: {', '.join(ident.retirement_goals)}")
        if ident.top_priorities:
            lines.append(f"- Priorities: {', '.join(ident.top_priorities)}")
        if ident.purpose_score > 0:
            lines.append(f"- Purpose Score: {_fmt(ident.purpose_score)}")
        lines.append("")

    if snapshot.volunteering:
        vol = snapshot.volunteering
        lines.append("### Volunteering")
        lines.append(f"- Matched Opportunities: {vol.matched_opportunities}")
        if vol.weekly_hours_committed > 0:
            lines.append(f"- Weekly Hours: {_fmt(vol.weekly_hours_committed)}")
        if vol.skills_to_share:
            lines.append(f"- Skills: {', '.join(vol.skills_to_share)}")
        lines.append("")

    if snapshot.legacy:
        leg = snapshot.legacy
        lines.append("### Estate & Legacy")
        lines.append(f"- Total Estate Value: {_money(leg.total_estate_value)}")
        lines.append(f"- Beneficiaries: {leg.beneficiaries}")
        if leg.charitable_giving_planned > 0:
            lines.append(f"- Charitable Giving Planned: {_money(leg.charitable_giving_planned)}")
        lines.append(f"- Estate Plan Complete: {'Yes' if leg.estate_plan_complete else 'No'}")
        lines.append("")

    if snapshot.gifting:
        gift = snapshot.gifting
        lines.append("### Gifting")
        lines.append(f"- Annual Gift Budget: {_money(gift.annual_gift_budget)}")
        if gift.education_funds_529 > 0:
            lines.append(f"- 529 Education Funds: {_money(gift.education_funds_529)}")
        lines.append(f"- Recipients: {gift.recipient_count}")
        lines.append("")

    if snapshot.digital_estate:
        de = snapshot.digital_estate
        lines.append("### Digital Estate")
        lines.append(f"- Digital Assets Inventoried: {de.digital_assets_count}")
        lines.append(f"- Documents Uploaded: {de.documents_uploaded}")
        lines.append("")

    return "\n".join(lines)
