"""
Plan document types and the LLM response parser.

The model is asked for a JSON plan but any field may be missing or carry the
wrong type, so parsing backfills every field with a default. Downstream code
(JSON responses, the PDF report, the cache) never has to check for absent keys.
"""

import re
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from errors import PlanParseError

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Unable to generate summary."
DEFAULT_SECTION_TITLE = "Untitled Section"
DEFAULT_SECTION_ICON = "SparklesIcon"
DEFAULT_WARNING_TITLE = "Notice"
PARSE_ERROR_MESSAGE = "Failed to parse AI response. Please try again."
RAW_PREFIX_CHARS = 500

CONFIDENCE_LEVELS = ("high", "medium", "low")
PRIORITY_LEVELS = ("critical", "high", "medium", "low")
WARNING_SEVERITIES = ("critical", "warning", "info")

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*|\s*```\s*$")


# ------------------------ Time helpers ------------------------ #

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp; naive values are taken as UTC. None when unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ------------------------ Coercion helpers ------------------------ #

def _text(value: Any, default: str = "") -> str:
    if isinstance(value, str):
        return value.strip() or default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [s for s in (_text(v) for v in value) if s]


def _choice(value: Any, allowed: Sequence[str], default: str) -> str:
    s = _text(value).lower()
    return s if s in allowed else default


def _score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, score))


def _mappings(value: Any) -> List[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, Mapping)]


# ------------------------ Data classes ------------------------ #

@dataclass
class PlanSection:
    id: str
    title: str = DEFAULT_SECTION_TITLE
    icon: str = DEFAULT_SECTION_ICON
    summary: str = ""
    details: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    related_tools: List[str] = field(default_factory=list)
    confidence: str = "medium"
    priority: str = "medium"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], index: int) -> "PlanSection":
        return cls(
            id=_text(d.get("id"), f"section-{index}"),
            title=_text(d.get("title"), DEFAULT_SECTION_TITLE),
            icon=_text(d.get("icon"), DEFAULT_SECTION_ICON),
            summary=_text(d.get("summary")),
            details=_text_list(d.get("details")),
            recommendations=_text_list(d.get("recommendations")),
            related_tools=_text_list(d.get("relatedTools")),
            confidence=_choice(d.get("confidence"), CONFIDENCE_LEVELS, "medium"),
            priority=_choice(d.get("priority"), PRIORITY_LEVELS, "medium"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "icon": self.icon,
            "summary": self.summary,
            "details": list(self.details),
            "recommendations": list(self.recommendations),
            "relatedTools": list(self.related_tools),
            "confidence": self.confidence,
            "priority": self.priority,
        }


@dataclass
class PlanWarning:
    id: str
    severity: str = "info"
    title: str = DEFAULT_WARNING_TITLE
    description: str = ""
    action_required: str = ""
    related_tools: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], index: int) -> "PlanWarning":
        return cls(
            id=_text(d.get("id"), f"warning-{index}"),
            severity=_choice(d.get("severity"), WARNING_SEVERITIES, "info"),
            title=_text(d.get("title"), DEFAULT_WARNING_TITLE),
            description=_text(d.get("description")),
            action_required=_text(d.get("actionRequired")),
            related_tools=_text_list(d.get("relatedTools")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "actionRequired": self.action_required,
            "relatedTools": list(self.related_tools),
        }


@dataclass
class PlanSynergy:
    title: str = ""
    description: str = ""
    tools: List[str] = field(default_factory=list)
    potential_impact: str = ""

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "PlanSynergy":
        return cls(
            title=_text(d.get("title")),
            description=_text(d.get("description")),
            tools=_text_list(d.get("tools")),
            potential_impact=_text(d.get("potentialImpact")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "tools": list(self.tools),
            "potentialImpact": self.potential_impact,
        }


@dataclass
class MissingDataSuggestion:
    tool: str = ""
    tool_id: str = ""
    reason: str = ""

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "MissingDataSuggestion":
        return cls(tool=_text(d.get("tool")), tool_id=_text(d.get("toolId")), reason=_text(d.get("reason")))

    def to_dict(self) -> Dict[str, Any]:
        return {"tool": self.tool, "toolId": self.tool_id, "reason": self.reason}


@dataclass
class Plan:
    id: str
    generated_at: str
    model_used: str
    data_completeness: int = 0
    tools_analyzed: List[str] = field(default_factory=list)
    executive_summary: str = DEFAULT_SUMMARY
    retirement_readiness_score: int = 0
    top_priorities: List[str] = field(default_factory=list)
    sections: List[PlanSection] = field(default_factory=list)
    warnings: List[PlanWarning] = field(default_factory=list)
    synergies: List[PlanSynergy] = field(default_factory=list)
    immediate_actions: List[str] = field(default_factory=list)
    short_term_actions: List[str] = field(default_factory=list)
    long_term_actions: List[str] = field(default_factory=list)
    missing_data_suggestions: List[MissingDataSuggestion] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], **overrides: Any) -> "Plan":
        """
        Build a Plan from the camelCase document (an LLM response or a cached copy).
        Keyword overrides (id, generated_at, model_used, data_completeness,
        tools_analyzed) take precedence over the document's own values.
        """
        plan = cls(
            id=_text(d.get("id"), f"plan-{int(utc_now().timestamp() * 1000)}"),
            generated_at=_text(d.get("generatedAt"), to_iso(utc_now())),
            model_used=_text(d.get("modelUsed"), "unknown"),
            data_completeness=_score(d.get("dataCompleteness")),
            tools_analyzed=_text_list(d.get("toolsAnalyzed")),
            executive_summary=_text(d.get("executiveSummary"), DEFAULT_SUMMARY),
            retirement_readiness_score=_score(d.get("retirementReadinessScore")),
            top_priorities=_text_list(d.get("topPriorities")),
            sections=[PlanSection.from_dict(s, i) for i, s in enumerate(_mappings(d.get("sections")))],
            warnings=[PlanWarning.from_dict(w, i) for i, w in enumerate(_mappings(d.get("warnings")))],
            synergies=[PlanSynergy.from_dict(s) for s in _mappings(d.get("synergies"))],
            immediate_actions=_text_list(d.get("immediateActions")),
            short_term_actions=_text_list(d.get("shortTermActions")),
            long_term_actions=_text_list(d.get("longTermActions")),
            missing_data_suggestions=[
                MissingDataSuggestion.from_dict(m) for m in _mappings(d.get("missingDataSuggestions"))
            ],
        )
        for key, value in overrides.items():
            setattr(plan, key, value)
        return plan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "generatedAt": self.generated_at,
            "modelUsed": self.model_used,
            "dataCompleteness": self.data_completeness,
            "toolsAnalyzed": list(self.tools_analyzed),
            "executiveSummary": self.executive_summary,
            "retirementReadinessScore": self.retirement_readiness_score,
            "topPriorities": list(self.top_priorities),
            "sections": [s.to_dict() for s in self.sections],
            "warnings": [w.to_dict() for w in self.warnings],
            "synergies": [s.to_dict() for s in self.synergies],
            "immediateActions": list(self.immediate_actions),
            "shortTermActions": list(self.short_term_actions),
            "longTermActions": list(self.long_term_actions),
            "missingDataSuggestions": [m.to_dict() for m in self.missing_data_suggestions],
        }


# ------------------------ Parsing ------------------------ #

def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def _load_document(raw_text: str) -> Any:
    cleaned = strip_code_fences(raw_text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    # Replies produced without JSON mode sometimes wrap the object in prose
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object found")
    return json.loads(cleaned[start:end + 1])


def parse_plan_response(
    raw_text: str,
    model_used: str,
    data_completeness: int,
    tools_analyzed: Sequence[str],
    now: Optional[datetime] = None,
) -> Plan:
    """Parse the model's raw text into a Plan. Raises PlanParseError, never retries."""
    try:
        doc = _load_document(raw_text)
    except ValueError as e:
        prefix = (raw_text or "")[:RAW_PREFIX_CHARS]
        logger.error("Plan parse failed (%s). Raw response prefix: %s", e, prefix)
        raise PlanParseError(PARSE_ERROR_MESSAGE, raw_prefix=prefix) from e

    if not isinstance(doc, dict):
        prefix = (raw_text or "")[:RAW_PREFIX_CHARS]
        logger.error("Plan response is %s, not an object. Raw response prefix: %s", type(doc).__name__, prefix)
        raise PlanParseError(PARSE_ERROR_MESSAGE, raw_prefix=prefix)

    now = now or utc_now()
    return Plan.from_dict(
        doc,
        id=f"plan-{int(now.timestamp() * 1000)}",
        generated_at=to_iso(now),
        model_used=model_used,
        data_completeness=int(data_completeness),
        tools_analyzed=list(tools_analyzed),
    )
