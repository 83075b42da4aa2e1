"""
Flask API for the Medical Device Navigator application.

Provides REST endpoints for:
- Buying, generating and verifying annual access codes (Stripe Checkout)
- Trial / premium session tokens and usage status
- Searching EMDN, ICD-10, ICD-11 MMS, ICF and ICHI
- ICD-10 clinical indications for EMDN/GMDN device codes
- User feedback

All business logic is delegated to the service layer under ``services/``.
"""

import logging
import os
import sys
from datetime import datetime

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

# Add parent directories to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.config import Settings
from api.errors import InvalidInputError, NavigatorError, UnauthenticatedError
from api.models import init_db
from api.services import (
    AccessCodeService,
    FeedbackService,
    IndicationService,
    IssuedCodeRepository,
    LookupService,
    PaymentService,
    SessionTokenService,
)
from api.services.access_codes import INSTRUCTIONS

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__, url_prefix="/api")

_STATUS_BY_KIND = {UnauthenticatedError.kind: UnauthenticatedError.status_code}


def _svc(name: str):
    return current_app.extensions["navigator"][name]


def _settings() -> Settings:
    return current_app.extensions["navigator"]["settings"]


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return data


def _parse_datetime(value, field: str) -> datetime | None:
    if value in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise InvalidInputError(f"'{field}' must be an ISO-8601 date")


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.args.get("token")


# ─── Health Check ────────────────────────────────────────────────────────────

@bp.route("/health", methods=["GET"])
def health_check():
    return jsonify({"status": "healthy", "service": "Medical Device Navigator API"})


# ─── Access Codes ────────────────────────────────────────────────────────────

@bp.route("/generate-access-code", methods=["POST"])
def generate_access_code():
    if _settings().is_production:
        return jsonify({"success": False, "error": "Access codes are issued on payment confirmation"}), 403
    data = _body()
    session_id = data.get("stripeSessionId", "")
    email = data.get("email") or ""
    generated = _svc("access_codes").generate(session_id, email)
    IssuedCodeRepository.record(generated, session_id, email)
    return jsonify({
        "success": True,
        "accessCode": generated.code,
        "expiresAt": generated.expires_at.isoformat(),
        "year": generated.year,
        "scheme": generated.scheme,
        "instructions": INSTRUCTIONS,
    })


@bp.route("/verify-access-code", methods=["POST"])
def verify_access_code():
    data = _body()
    issued_at = _parse_datetime(data.get("issuedAt"), "issuedAt")
    result = _svc("access_codes").verify(data.get("accessCode"), issued_at=issued_at)
    if not result.valid:
        payload = {"success": False, **result.to_dict()}
        return jsonify(payload), _STATUS_BY_KIND.get(result.error_kind, 400)

    token = _svc("tokens").issue_premium(data.get("sessionId"), result.expires_at)
    return jsonify({"success": True, **result.to_dict(), "sessionToken": token})


# ─── Payments ────────────────────────────────────────────────────────────────

@bp.route("/create-checkout", methods=["POST"])
def create_checkout():
    data = _body()
    return jsonify(_svc("payments").create_checkout(
        session_id=data.get("sessionId"),
        email=data.get("email"),
        origin=request.headers.get("Origin"),
    ))


@bp.route("/payment-success", methods=["GET"])
def payment_success():
    return jsonify(_svc("payments").confirm_payment(request.args.get("session_id", "").strip()))


@bp.route("/stripe-webhook", methods=["POST"])
def stripe_webhook():
    return jsonify(_svc("payments").handle_webhook(
        request.get_data(),
        request.headers.get("Stripe-Signature"),
    ))


# ─── Sessions / Usage ────────────────────────────────────────────────────────

@bp.route("/session", methods=["POST"])
def start_session():
    tokens = _svc("tokens")
    token = tokens.issue_trial(_body().get("sessionId"))
    status = tokens.inspect(token)
    return jsonify({"success": True, "sessionToken": token, "remainingTime": status.remaining_ms})


@bp.route("/usage", methods=["GET"])
def usage_status():
    token = _bearer_token()
    if not token:
        raise UnauthenticatedError("Session token required")
    status = _svc("tokens").inspect(token)
    return jsonify({"success": True, **status.to_dict()})


# ─── Feedback ────────────────────────────────────────────────────────────────

@bp.route("/feedback", methods=["POST"])
def submit_feedback():
    data = _body()
    return jsonify(FeedbackService.submit(
        type=data.get("type"),
        message=data.get("message"),
        email=data.get("email"),
        gmdn_code=data.get("gmdnCode"),
        emdn_code=data.get("emdnCode"),
        user_agent=data.get("userAgent") or request.headers.get("User-Agent"),
        ip=request.headers.get("X-Forwarded-For") or request.remote_addr or "unknown",
    ))


@bp.route("/feedback", methods=["GET"])
def list_feedback():
    return jsonify(FeedbackService.list_feedback(
        status=request.args.get("status"),
        limit=request.args.get("limit", 50, type=int),
    ))


# ─── Global Search ───────────────────────────────────────────────────────────

@bp.route("/search", methods=["GET"])
def search_all():
    q = request.args.get("q", "").strip()
    limit = request.args.get("limit", 50, type=int)
    if not q:
        return jsonify({"error": "Search query 'q' is required"}), 400
    results = _svc("lookup").search_all(q, limit)
    return jsonify({"query": q, "results": results, "total": len(results)})


# ─── EMDN ────────────────────────────────────────────────────────────────────

@bp.route("/emdn/categories", methods=["GET"])
def list_emdn_categories():
    return jsonify(_svc("lookup").emdn.categories())


@bp.route("/emdn/level/<int:level>", methods=["GET"])
def list_emdn_level(level):
    return jsonify(_svc("lookup").emdn.entries_by_level(level))


@bp.route("/emdn/terminal", methods=["GET"])
def list_emdn_terminal():
    return jsonify(_svc("lookup").emdn.terminal_entries())


@bp.route("/emdn/<code>/children", methods=["GET"])
def list_emdn_children(code):
    return jsonify(_svc("lookup").emdn.children_of(code))


# ─── ICD-10 ──────────────────────────────────────────────────────────────────

@bp.route("/icd10/chapter/<chapter>", methods=["GET"])
def list_icd10_chapter(chapter):
    return jsonify(_svc("lookup").icd10.by_chapter(chapter))


# ─── Per-system lookup (emdn, icd10, icd11, icf, ichi) ───────────────────────

@bp.route("/<system>/search", methods=["GET"])
def search_system(system):
    q = request.args.get("q", "").strip()
    limit = request.args.get("limit", 50, type=int)
    results = _svc("lookup").search(system, q, limit)
    return jsonify({"system": system.lower(), "query": q, "results": results, "total": len(results)})


@bp.route("/<system>/kind/<class_kind>", methods=["GET"])
def list_by_class_kind(system, class_kind):
    if system.lower() not in ("icd11", "icf", "ichi"):
        return jsonify({"error": f"{system} entries have no class kind"}), 404
    return jsonify(_svc("lookup").dataset(system).by_class_kind(class_kind))


@bp.route("/<system>/<code>", methods=["GET"])
def get_code(system, code):
    result = _svc("lookup").get(system, code)
    if result is None:
        return jsonify({"error": f"{system.upper()} code {code} not found"}), 404
    return jsonify(result)


# ─── Clinical Indications ────────────────────────────────────────────────────

@bp.route("/indications/devices/<icd_code>", methods=["GET"])
def search_devices_by_icd(icd_code):
    return jsonify(_svc("indications").search_devices_by_icd(icd_code))


@bp.route("/indications/<device_type>/<code>", methods=["GET"])
def get_indications(device_type, code):
    service = _svc("indications")
    indications = service.get_indications(device_type, code)
    return jsonify({
        "deviceType": device_type.lower(),
        "deviceCode": code,
        "indications": indications,
        "summary": service.clinical_summary(code, device_type),
        "byChapter": service.group_by_chapter(indications),
    })


# ─── Stats & Resources ───────────────────────────────────────────────────────

@bp.route("/stats", methods=["GET"])
def get_stats():
    stats = _svc("lookup").stats()
    stats["indications"] = {"available": _svc("indications").mappings_available()}
    return jsonify(stats)


@bp.route("/resources", methods=["GET"])
def get_resources():
    return jsonify(LookupService.get_resources())


# ─── Error Handling ──────────────────────────────────────────────────────────

def _handle_navigator_error(e: NavigatorError):
    if e.status_code >= 500:
        logger.error(f"{e.kind}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


def _handle_unexpected_error(e: Exception):
    if isinstance(e, HTTPException):
        return e
    logger.exception(f"Unhandled error on {request.method} {request.path}")
    return jsonify({"success": False, "error": "Internal server error"}), 500


# ─── App Factory ─────────────────────────────────────────────────────────────

def create_app(settings: Settings | None = None, clock=None) -> Flask:
    """Build the Flask app and wire services from *settings*."""
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    CORS(
        app,
        resources={r"/api/*": {"origins": settings.cors_origins}},
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Stripe-Signature"],
    )

    init_db(settings.database_url)

    access_codes = AccessCodeService(
        secret_salt=settings.resolve_access_code_secret(),
        clock=clock,
        issued_lookup=IssuedCodeRepository.lookup_issued_at,
        require_issued_record=settings.access_code_strict,
    )
    app.extensions["navigator"] = {
        "settings": settings,
        "access_codes": access_codes,
        "tokens": SessionTokenService(
            secret=settings.resolve_session_secret(),
            trial_seconds=settings.trial_seconds,
            premium_ttl=settings.premium_token_ttl,
            clock=clock,
        ),
        "payments": PaymentService(
            access_codes,
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            amount_cents=settings.checkout_amount_cents,
            currency=settings.checkout_currency,
            default_origin=settings.public_base_url,
        ),
        "lookup": LookupService(settings.data_dir),
        "indications": IndicationService(settings.data_dir),
    }

    app.register_blueprint(bp)
    app.register_error_handler(NavigatorError, _handle_navigator_error)
    app.register_error_handler(Exception, _handle_unexpected_error)

    logger.info(
        f"Medical Device Navigator API ready (env={settings.env}, "
        f"stripe={'demo' if not settings.stripe_secret_key else 'live'}, "
        f"strict_codes={settings.access_code_strict})"
    )
    return app


# ─── Entry Point ─────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    create_app().run(debug=True, host="0.0.0.0", port=5000, use_reloader=False)
