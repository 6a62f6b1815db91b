"""
Datasette plugin exposing the treasury suggestion queue.

Routes:
- GET  /-/treasury/queue[?status=pending]  queue contents and stats
- POST /-/treasury/analyze                 analyze one coin and maybe queue it
- GET  /-/treasury/health                  liveness
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from datasette import Response, hookimpl
from datasette.utils.asgi import Request

from treasury_agent.coins import ResolutionError
from treasury_agent.config import PLUGIN_NAME, AgentConfig, ConfigurationError
from treasury_agent.gate import AnalysisGate
from treasury_agent.models import SuggestionStatus
from treasury_agent.services import AgentServices, open_store

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Plugin Configuration
# -----------------------------------------------------------------------------


def get_agent_config(datasette) -> AgentConfig:
    """Agent configuration from datasette.yaml (plugins.<name>.agent)."""
    config = datasette.plugin_config(PLUGIN_NAME) or {}
    return AgentConfig.from_dict(config.get("agent", {}) or {})


def build_gate(datasette) -> AnalysisGate:
    return AgentServices.from_config(get_agent_config(datasette)).gate()


def error_response(message: str, status: int) -> Response:
    return Response.json({"success": False, "error": message}, status=status)


async def read_payload(request: Request) -> dict[str, Any]:
    """Request body as a dict, from JSON or form encoding."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        body = await request.post_body()
        if not body:
            return {}
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        return data
    return dict(await request.post_vars())


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


async def treasury_queue(request: Request, datasette) -> Response:
    """List queued suggestions, optionally filtered by status."""
    store = open_store(get_agent_config(datasette))

    status = request.args.get("status")
    if status:
        try:
            suggestions = store.list_by_status(SuggestionStatus(status))
        except ValueError:
            valid = [s.value for s in SuggestionStatus]
            return error_response(f"Invalid status. Must be one of: {valid}", 400)
    else:
        suggestions = store.list_all()

    return Response.json(
        {
            "success": True,
            "stats": store.stats().to_dict(),
            "suggestions": [s.to_dict() for s in suggestions],
            "count": len(suggestions),
        }
    )


async def treasury_analyze(request: Request, datasette) -> Response:
    """Analyze one coin. "Do not invest" outcomes are still a success envelope."""
    if request.method != "POST":
        return error_response("Method not allowed", 405)

    try:
        payload = await read_payload(request)
    except ValueError as e:
        return error_response(f"Invalid request body: {e}", 400)

    identifier = str(payload.get("identifier") or payload.get("username") or "").strip()
    if not identifier:
        return error_response("identifier (or username) is required", 400)

    config = get_agent_config(datasette)
    threshold = config.confidence_threshold
    raw_threshold = payload.get("confidenceThreshold")
    if raw_threshold not in (None, ""):
        try:
            threshold = float(raw_threshold)
        except (TypeError, ValueError):
            return error_response("confidenceThreshold must be a number", 400)
        if not 0 <= threshold <= 1:
            return error_response("confidenceThreshold must be between 0 and 1", 400)

    submitted_by = payload.get("submittedBy") or identifier

    try:
        gate = build_gate(datasette)
        decision = await gate.evaluate(identifier, threshold, submitted_by=submitted_by)
    except ResolutionError as e:
        return error_response(str(e), 400)
    except ConfigurationError as e:
        logger.error(f"Analyze unavailable: {e}")
        return error_response(f"Server misconfigured: {e}", 500)
    except Exception as e:
        logger.exception(f"Analysis failed for {identifier!r}")
        return error_response(f"Analysis failed: {e}", 500)

    return Response.json({"success": True, "analysis": decision.to_dict()})


async def treasury_health(request: Request, datasette) -> Response:
    return Response.json(
        {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}
    )


# -----------------------------------------------------------------------------
# Datasette Hooks
# -----------------------------------------------------------------------------


@hookimpl
def register_routes():
    """Register plugin routes with Datasette."""
    return [
        (r"^/-/treasury/queue$", treasury_queue),
        (r"^/-/treasury/analyze$", treasury_analyze),
        (r"^/-/treasury/health$", treasury_health),
    ]


@hookimpl
def skip_csrf(datasette, scope):
    """JSON API routes are called by other services, not from Datasette pages."""
    if scope.get("path", "").startswith("/-/treasury/"):
        return True
    return None
