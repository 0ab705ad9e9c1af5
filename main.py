from flask import Flask, current_app, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from datetime import datetime
from decimal import InvalidOperation
import logging

from outcome_billing import FeeEngine
from outcome_billing.clock import SystemClock
from outcome_billing.config import Settings
from outcome_billing.db import create_tables, init_engine_from_url, session_scope
from outcome_billing.exceptions import (
    Conflict,
    InvalidArgument,
    InvalidState,
    NotFound,
    OutcomeBillingError,
)
from outcome_billing.output import event_to_dict, invoice_to_dict, page_to_dict, plan_to_dict
from outcome_billing.services import (
    AccessGate,
    BillingAggregator,
    EventLifecycleManager,
    InvoiceService,
    PricingPlanStore,
)
from outcome_billing.signals import DealSignalHandler, DeduplicationStore

# Configure logging
settings = Settings.from_env()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: 404,
    Conflict: 409,
    InvalidArgument: 400,
    InvalidState: 409,
}

fee_engine = FeeEngine()


def create_app(app_settings: Settings | None = None, clock=None) -> Flask:
    """
    Build the Flask app and initialize the database.

    For WSGI servers: gunicorn "main:create_app()"
    """
    app_settings = app_settings or settings
    clock = clock or SystemClock()

    app = Flask(__name__)

    # Enable CORS for all routes (the admin dashboard is served from another origin)
    CORS(app)

    init_engine_from_url(app_settings.database_url)
    create_tables()

    app.config["SETTINGS"] = app_settings
    app.config["CLOCK"] = clock
    app.config["SIGNAL_HANDLER"] = DealSignalHandler(
        DeduplicationStore(app_settings.dedup_cache_size), clock=clock
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(OutcomeBillingError)
    def handle_billing_error(e: OutcomeBillingError):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 400)
        logger.warning(f"{e.code}: {e.message}")
        return jsonify({"error": e.message, "code": e.code, "status": "failed"}), status

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description, "status": "failed"}), e.code
        # Log details but return a generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred during processing", "status": "failed"}), 500


# =============================================================================
# REQUEST HELPERS
# =============================================================================


def _clock():
    return current_app.config["CLOCK"]


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidArgument("Request body must be a JSON object")
    return data


def _organization_header() -> str | None:
    return request.headers.get("X-Organization-Id") or None


def _reviewer_id() -> str:
    reviewer = request.headers.get("X-User-Id")
    if not reviewer:
        raise InvalidArgument("X-User-Id header is required")
    return reviewer


def _int_arg(name: str) -> int | None:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidArgument(f"{name} must be an integer, got: {value}") from None


def _bool_arg(name: str) -> bool | None:
    value = request.args.get(name)
    if value is None or value == "":
        return None
    if value.lower() in ("true", "1"):
        return True
    if value.lower() in ("false", "0"):
        return False
    raise InvalidArgument(f"{name} must be true or false, got: {value}")


def _date_arg(name: str) -> datetime | None:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise InvalidArgument(f"{name} must be an ISO date, got: {value}") from None


def _event_filters(organization_id: str | None) -> dict:
    return {
        "organization_id": organization_id,
        "status": request.args.get("status") or None,
        "start_date": _date_arg("start_date"),
        "end_date": _date_arg("end_date"),
        "page": _int_arg("page"),
        "limit": _int_arg("limit"),
    }


def _empty_page() -> dict:
    return {"data": [], "total": 0, "page": 1, "limit": _int_arg("limit") or 20, "total_pages": 0}


# =============================================================================
# ROUTES
# =============================================================================


def _register_routes(app: Flask) -> None:

    @app.route("/api", methods=["GET"])
    def api_info():
        """API information endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Outcome Billing API",
            "version": "1.0",
            "endpoints": {
                "fee_preview": "/fee-preview [POST]",
                "tenant": "/outcome-billing/{plan,events,stats} [GET]",
                "admin": "/admin/outcome-billing/* [GET, POST, PATCH, DELETE]",
                "deal_signals": "/deals/<opportunity_id>/{closed-won,reopened} [POST]",
                "access": "/access/{organizations,users}/<id> [GET]",
                "health": "/health [GET]"
            }
        }), 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for monitoring"""
        return jsonify({"status": "healthy"}), 200

    @app.route("/fee-preview", methods=["POST"])
    def fee_preview():
        """Run the fee calculator on an ad-hoc plan without recording anything"""
        data = _json_body()
        try:
            result = fee_engine.calculate_from_dict(data)
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise InvalidArgument(f"Invalid fee preview input: {str(e)}") from None
        return jsonify(result), 200

    # ---- Tenant endpoints (scoped by X-Organization-Id) ----------------------

    @app.route("/outcome-billing/plan", methods=["GET"])
    def tenant_plan():
        organization_id = _organization_header()
        if not organization_id:
            return jsonify(None), 200
        with session_scope() as session:
            plan = PricingPlanStore(session).get_by_organization(organization_id)
            return jsonify(plan_to_dict(plan) if plan else None), 200

    @app.route("/outcome-billing/events", methods=["GET"])
    def tenant_events():
        organization_id = _organization_header()
        if not organization_id:
            return jsonify(_empty_page()), 200
        with session_scope() as session:
            page = EventLifecycleManager(session, _clock()).list_events(**_event_filters(organization_id))
            return jsonify(page_to_dict(page, event_to_dict)), 200

    @app.route("/outcome-billing/stats", methods=["GET"])
    def tenant_stats():
        organization_id = _organization_header()
        if not organization_id:
            return jsonify(None), 200
        with session_scope() as session:
            return jsonify(BillingAggregator(session, _clock()).get_outcome_billing_stats(organization_id)), 200

    # ---- Admin: dashboard and plans -----------------------------------------

    @app.route("/admin/outcome-billing/dashboard", methods=["GET"])
    def admin_dashboard():
        with session_scope() as session:
            return jsonify(BillingAggregator(session, _clock()).get_admin_dashboard_stats()), 200

    @app.route("/admin/outcome-billing/plans", methods=["POST"])
    def create_plan():
        data = _json_body()
        with session_scope() as session:
            plan = PricingPlanStore(session).create(data)
            return jsonify(plan_to_dict(plan)), 201

    @app.route("/admin/outcome-billing/plans", methods=["GET"])
    def list_plans():
        with session_scope() as session:
            page = PricingPlanStore(session).list(
                page=_int_arg("page"), limit=_int_arg("limit"), is_active=_bool_arg("is_active")
            )
            return jsonify(page_to_dict(page, plan_to_dict)), 200

    @app.route("/admin/outcome-billing/plans/<plan_id>", methods=["GET"])
    def get_plan(plan_id):
        with session_scope() as session:
            plan = PricingPlanStore(session).get(plan_id)
            return jsonify(plan_to_dict(plan) if plan else None), 200

    @app.route("/admin/outcome-billing/plans/organization/<organization_id>", methods=["GET"])
    def get_plan_by_organization(organization_id):
        with session_scope() as session:
            plan = PricingPlanStore(session).get_by_organization(organization_id)
            return jsonify(plan_to_dict(plan) if plan else None), 200

    @app.route("/admin/outcome-billing/plans/<plan_id>", methods=["PATCH"])
    def update_plan(plan_id):
        data = _json_body()
        with session_scope() as session:
            plan = PricingPlanStore(session).update(plan_id, data)
            return jsonify(plan_to_dict(plan)), 200

    @app.route("/admin/outcome-billing/plans/<plan_id>", methods=["DELETE"])
    def delete_plan(plan_id):
        with session_scope() as session:
            PricingPlanStore(session).delete(plan_id)
        return jsonify({"status": "deleted", "id": plan_id}), 200

    # ---- Admin: events ------------------------------------------------------

    @app.route("/admin/outcome-billing/events", methods=["GET"])
    def admin_events():
        with session_scope() as session:
            filters = _event_filters(request.args.get("organization_id") or None)
            page = EventLifecycleManager(session, _clock()).list_events(**filters)
            return jsonify(page_to_dict(page, event_to_dict)), 200

    @app.route("/admin/outcome-billing/events/<event_id>", methods=["GET"])
    def admin_event(event_id):
        with session_scope() as session:
            event = EventLifecycleManager(session, _clock()).get_event(event_id)
            return jsonify(event_to_dict(event, include_breakdown=True) if event else None), 200

    @app.route("/admin/outcome-billing/events/<event_id>/waive", methods=["POST"])
    def waive_event(event_id):
        data = _json_body()
        reviewer_id = _reviewer_id()
        with session_scope() as session:
            event = EventLifecycleManager(session, _clock()).waive_event(event_id, data.get("reason"), reviewer_id)
            return jsonify(event_to_dict(event)), 200

    @app.route("/admin/outcome-billing/events/<event_id>/void", methods=["POST"])
    def void_event(event_id):
        data = _json_body()
        reviewer_id = _reviewer_id()
        with session_scope() as session:
            event = EventLifecycleManager(session, _clock()).void_event(event_id, data.get("reason"), reviewer_id)
            return jsonify(event_to_dict(event)), 200

    @app.route("/admin/outcome-billing/events/<event_id>/resolve", methods=["POST"])
    def resolve_event(event_id):
        data = _json_body()
        reviewer_id = _reviewer_id()
        with session_scope() as session:
            event = EventLifecycleManager(session, _clock()).resolve_review(
                event_id, data.get("action"), data.get("reason"), reviewer_id
            )
            return jsonify(event_to_dict(event)), 200

    # ---- Admin: invoicing and stats -----------------------------------------

    @app.route("/admin/outcome-billing/generate-invoice/<organization_id>", methods=["POST"])
    def generate_invoice(organization_id):
        with session_scope() as session:
            invoice = InvoiceService(session, _clock()).generate_invoice(organization_id)
            return jsonify(invoice_to_dict(invoice) if invoice else None), 200

    @app.route("/admin/outcome-billing/process-billing", methods=["POST"])
    def process_billing():
        with session_scope() as session:
            invoices = InvoiceService(session, _clock()).process_billing()
            return jsonify({
                "message": "Billing processed successfully",
                "invoices": [invoice_to_dict(i) for i in invoices]
            }), 200

    @app.route("/admin/outcome-billing/invoices/<invoice_id>/pay", methods=["POST"])
    def pay_invoice(invoice_id):
        with session_scope() as session:
            invoice = InvoiceService(session, _clock()).mark_invoice_paid(invoice_id)
            return jsonify(invoice_to_dict(invoice)), 200

    @app.route("/admin/outcome-billing/stats/<organization_id>", methods=["GET"])
    def organization_stats(organization_id):
        with session_scope() as session:
            return jsonify(BillingAggregator(session, _clock()).get_outcome_billing_stats(organization_id)), 200

    # ---- Deal pipeline ------------------------------------------------------

    @app.route("/deals/<opportunity_id>/closed-won", methods=["POST"])
    def deal_closed_won(opportunity_id):
        organization_id = _organization_header()
        if not organization_id:
            raise InvalidArgument("X-Organization-Id header is required")
        data = request.get_json(silent=True) or {}

        logger.info(f"Processing closed-won deal: {opportunity_id}")
        handler = app.config["SIGNAL_HANDLER"]
        event = handler.deal_closed_won(opportunity_id, organization_id, data.get("signal_key"))
        return jsonify(event_to_dict(event) if event else None), 200

    @app.route("/deals/<opportunity_id>/reopened", methods=["POST"])
    def deal_reopened(opportunity_id):
        data = _json_body()
        if not data.get("stage"):
            raise InvalidArgument("stage is required")

        handler = app.config["SIGNAL_HANDLER"]
        event = handler.deal_reopened(opportunity_id, data["stage"], data.get("signal_key"))
        return jsonify(event_to_dict(event) if event else None), 200

    # ---- Access gate --------------------------------------------------------

    @app.route("/access/organizations/<organization_id>", methods=["GET"])
    def organization_access(organization_id):
        with session_scope() as session:
            has_access = AccessGate(session).has_outcome_based_access(organization_id)
        return jsonify({"organization_id": organization_id, "has_access": has_access}), 200

    @app.route("/access/users/<user_id>", methods=["GET"])
    def user_access(user_id):
        with session_scope() as session:
            has_access = AccessGate(session).user_has_outcome_based_access(user_id)
        return jsonify({"user_id": user_id, "has_access": has_access}), 200


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=settings.port, debug=False)
