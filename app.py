from flask import Flask, request, jsonify, send_file, g
from dotenv import load_dotenv
import io
import os
import logging
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from auth import require_auth
from db import LocalPlanStore
from errors import NoDataError, NoProviderError, PlanParseError, ProviderCallError
from insights import high_priority_count
from llm_providers import ProviderConfig
from orchestrator import TIER_FREE, TIER_PAID, PlanOrchestrator, analyze_tool_data
from plan_cache import PlanCache, assess_staleness
from plan_report import render_plan_pdf
from tool_store import ToolDataStore

# --- Initialization ---
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)
# Respect reverse proxy headers (scheme/host) for correct external URLs
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)
app.config['PREFERRED_URL_SCHEME'] = 'https'

# Built on first use so importing the app needs no credentials
_plan_cache = None
_orchestrator = None


def _get_plan_cache() -> PlanCache:
    global _plan_cache
    if _plan_cache is None:
        _plan_cache = PlanCache(LocalPlanStore(), ToolDataStore())
    return _plan_cache


def _get_orchestrator() -> PlanOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = PlanOrchestrator(
            ProviderConfig.from_env(),
            store=ToolDataStore(),
            cache=_get_plan_cache(),
        )
    return _orchestrator


def _forbidden_user(data) -> bool:
    """A body userId, when given, must match the authenticated user."""
    requested = (data or {}).get("userId")
    return bool(requested) and requested != g.user_id


# --- Flask Routes ---

@app.route('/healthz', methods=['GET'])
def healthz():
    return jsonify({"status": "ok"}), 200


@app.route('/api/orchestrator', methods=['POST'])
@require_auth
async def generate_plan():
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    elif not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    if _forbidden_user(data):
        return jsonify({"error": "userId does not match the authenticated user"}), 403

    tier = data.get("tier") if data.get("tier") in (TIER_FREE, TIER_PAID) else TIER_FREE
    focus_areas = data.get("focusAreas")
    if not isinstance(focus_areas, list):
        focus_areas = None

    try:
        result = await _get_orchestrator().generate(g.user_id, g.auth_token, tier=tier, focus_areas=focus_areas)
    except NoDataError as e:
        return jsonify({"error": e.message, "missingDataSuggestions": e.suggestions}), 400
    except (NoProviderError, PlanParseError) as e:
        logger.error("Plan generation failed for %s: %s", g.user_id, e)
        return jsonify({"error": str(e)}), 500
    except ProviderCallError as e:
        logger.error("AI provider failed for %s: %s", g.user_id, e)
        return jsonify({"error": f"AI provider request failed: {e}"}), 502

    return jsonify(result.to_dict()), 200


@app.route('/api/orchestrator/cached', methods=['GET'])
@require_auth
async def cached_plan():
    cached = await _get_plan_cache().load_cached(g.user_id, g.auth_token)
    if cached is None:
        return jsonify({"error": "No cached plan"}), 404

    signature = await _get_orchestrator().current_signature(g.user_id, g.auth_token)
    staleness = assess_staleness(cached, signature)

    payload = {
        "plan": cached.plan.to_dict(),
        "cached": True,
        "tierUsed": cached.tier_used,
        "cachedAt": cached.cached_at,
        "stale": staleness.to_dict(),
    }
    if cached.tokens_used is not None:
        payload["tokensUsed"] = cached.tokens_used
    return jsonify(payload), 200


@app.route('/api/insights', methods=['GET'])
@require_auth
async def insights_view():
    raw = await _get_orchestrator().fetch_tool_data(g.user_id, g.auth_token)
    snapshot, insights = analyze_tool_data(raw)
    return jsonify({
        "insights": [i.to_dict() for i in insights],
        "highPriorityCount": high_priority_count(insights),
        "dataCompleteness": snapshot.data_completeness,
        "toolsWithData": list(snapshot.tools_with_data),
    }), 200


@app.route('/api/orchestrator/report', methods=['GET'])
@require_auth
async def plan_report():
    cached = await _get_plan_cache().load_cached(g.user_id, g.auth_token)
    if cached is None:
        return jsonify({"error": "No cached plan"}), 404

    pdf = render_plan_pdf(cached.plan, cached_at=cached.cached_at, tier_used=cached.tier_used)
    filename = f"retirement-plan-{cached.plan.generated_at[:10] or 'latest'}.pdf"
    return send_file(io.BytesIO(pdf), mimetype="application/pdf", as_attachment=True, download_name=filename)


# --- Main Execution ---
if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=False)
