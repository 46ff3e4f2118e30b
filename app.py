import os
import logging
import uuid

from flask import Flask, g, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv

from here_client import GeocodeNotFound, HereClient, UpstreamUnavailable
from nearby_pois import aggregate_nearby_pois, poi_counts
from pl_trace import AnalysisTrace, clear_trace, set_trace
from poi_classifier import serialize_collection
from property_analyzer import analyze_property, profile_to_dict
from traffic_estimator import STRATEGIES, estimate_traffic
from traffic_report import serialize_for_result

load_dotenv()

# ---------------------------------------------------------------------------
# Sentry error tracking, gated on SENTRY_DSN; silent when unset (local dev)
# ---------------------------------------------------------------------------
_sentry_dsn = os.environ.get("SENTRY_DSN")
if _sentry_dsn:
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    import requests.exceptions

    def _sentry_before_send(event, hint):
        """Demote expected failures to breadcrumbs; only unexpected errors become Sentry events."""
        exc_info = hint.get("exc_info")
        if exc_info:
            exc_type, exc_value, _ = exc_info
            msg = str(exc_value) if exc_value else ""
            # Address the geocoder could not resolve
            if exc_type is not None and issubclass(exc_type, GeocodeNotFound):
                sentry_sdk.add_breadcrumb(
                    category="geocoding",
                    message=msg,
                    level="warning",
                )
                return None
            # HERE / Geoapify outages and timeouts
            if exc_type is not None and issubclass(
                exc_type, (UpstreamUnavailable, requests.exceptions.RequestException)
            ):
                sentry_sdk.add_breadcrumb(
                    category="upstream",
                    message=msg,
                    level="warning",
                )
                return None
        return event

    sentry_sdk.init(
        dsn=_sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.0,
        release=os.environ.get("GIT_COMMIT_SHA"),
        environment=os.environ.get("DEPLOY_ENVIRONMENT", "production"),
        before_send=_sentry_before_send,
    )

app = Flask(__name__)
app.json.sort_keys = False

# Behind a reverse proxy request.remote_addr is the proxy; ProxyFix restores
# the client IP for Flask-Limiter and logging.
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Rate limiting. Each analysis costs several HERE calls.
# In-memory storage is per-process (with 2 gunicorn workers the effective
# limit is ~2x nominal).
# ---------------------------------------------------------------------------
RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "60/minute")
RATE_LIMIT_ANALYZE = os.environ.get("RATE_LIMIT_ANALYZE", "30/hour")

limiter = Limiter(
    get_remote_address,
    app=app,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri="memory://",
)
logging.getLogger("flask-limiter").setLevel(logging.WARNING)

# ---------------------------------------------------------------------------
# Startup: warn immediately if required config is missing
# ---------------------------------------------------------------------------
if not os.environ.get("HERE_API_KEY"):
    logger.warning(
        "HERE_API_KEY is not set. "
        "Address analysis will fail until it is configured. "
        "For local development, copy .env.example to .env and add your key."
    )


def _generate_request_id():
    return uuid.uuid4().hex[:10]


@app.before_request
def _set_request_context():
    g.request_id = _generate_request_id()


@app.after_request
def _after_request(response):
    response.headers["X-Request-ID"] = getattr(g, "request_id", "")
    return response


def _check_service_config():
    """
    Validate required service configuration.
    Returns (is_ok, missing_keys) tuple.
    """
    missing = []
    if not os.environ.get("HERE_API_KEY"):
        missing.append("HERE_API_KEY")
    return (len(missing) == 0, missing)


def _float_arg(name):
    """Query parameter as float; None when absent or not a number."""
    raw = request.args.get(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def _wants_trace():
    return request.args.get("trace") == "1"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.route("/healthz")
@limiter.exempt
def healthz():
    """Lightweight health-check endpoint for monitoring."""
    config_ok, missing = _check_service_config()
    return jsonify({
        "status": "ok" if config_ok else "degraded",
        "missing_keys": missing,
    }), 200 if config_ok else 503


@app.route("/api/analyze", methods=["POST"])
@limiter.limit(RATE_LIMIT_ANALYZE)
def api_analyze():
    """Full property profile for {"address": "..."}."""
    request_id = getattr(g, "request_id", "unknown")
    data = request.get_json(silent=True) or {}
    address = str(data.get("address") or "").strip()
    if not address:
        return jsonify({"error": "address is required", "request_id": request_id}), 400

    config_ok, missing_keys = _check_service_config()
    if not config_ok:
        logger.error("[%s] Missing required env vars: %s", request_id, missing_keys)
        return jsonify({
            "error": "Service is not configured",
            "missing_keys": missing_keys,
            "request_id": request_id,
        }), 503

    strategy = data.get("strategy")
    if strategy not in STRATEGIES:
        strategy = None

    trace_ctx = AnalysisTrace(trace_id=request_id)
    set_trace(trace_ctx)
    try:
        logger.info("[%s] Analyzing: %s", request_id, address)
        profile = analyze_property(address, strategy=strategy)
        body = profile_to_dict(profile)
        body["request_id"] = request_id
        if _wants_trace():
            body["_trace"] = trace_ctx.to_dict()
        return jsonify(body)
    except (GeocodeNotFound, UpstreamUnavailable) as e:
        logger.warning("[%s] Geocoding failed for %r: %s", request_id, address, e)
        body = {"error": "Could not analyze this address", "request_id": request_id}
        if _wants_trace():
            body["_trace"] = trace_ctx.to_dict()
        return jsonify(body), 422
    finally:
        trace_ctx.log_summary()
        clear_trace()


@app.route("/api/traffic")
def api_traffic():
    """Traffic report for ?lat=&lng=; bad coordinates yield the fallback estimate."""
    if "lat" not in request.args or "lng" not in request.args:
        return jsonify({"error": "lat and lng are required"}), 400

    strategy = request.args.get("strategy")
    if strategy not in STRATEGIES:
        strategy = None

    trace_ctx = AnalysisTrace(trace_id=getattr(g, "request_id", "unknown"))
    set_trace(trace_ctx)
    try:
        report = estimate_traffic(
            {"lat": _float_arg("lat"), "lng": _float_arg("lng")},
            strategy=strategy,
        )
        body = serialize_for_result(report)
        if _wants_trace():
            body["_trace"] = trace_ctx.to_dict()
        return jsonify(body)
    finally:
        clear_trace()


@app.route("/api/pois")
def api_pois():
    """Classified POIs for ?lat=&lng=; always all eight categories."""
    if "lat" not in request.args or "lng" not in request.args:
        return jsonify({"error": "lat and lng are required"}), 400

    trace_ctx = AnalysisTrace(trace_id=getattr(g, "request_id", "unknown"))
    set_trace(trace_ctx)
    try:
        collection = aggregate_nearby_pois(
            {"lat": _float_arg("lat"), "lng": _float_arg("lng")},
            client=HereClient(),
        )
        body = {
            "pois": serialize_collection(collection),
            "counts": poi_counts(collection),
        }
        if _wants_trace():
            body["_trace"] = trace_ctx.to_dict()
        return jsonify(body)
    finally:
        clear_trace()


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.errorhandler(429)
def rate_limit_exceeded(e):
    return jsonify({
        "error": "Too many requests. Please wait and try again.",
    }), 429


@app.errorhandler(404)
def not_found(e):
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(500)
def internal_error(e):
    return jsonify({
        "error": "Internal server error",
        "request_id": getattr(g, "request_id", "unknown"),
    }), 500


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    debug = os.environ.get("FLASK_DEBUG", "0") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
