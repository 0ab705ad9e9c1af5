"""
AWS Lambda handler for the Outcome Billing deal-signal pipeline.

This is the production entry point for CRM deal-stage webhooks.
For local development and the admin API, use main.py (Flask app) instead.
"""

import base64
import json
import logging
import os

from outcome_billing.config import Settings
from outcome_billing.db import create_tables, init_engine_from_url
from outcome_billing.output import event_to_dict
from outcome_billing.signals import DealSignalHandler, DeduplicationStore

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Environment (dev, staging, prod)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "dev")

SIGNAL_TYPES = ("closed_won", "reopened")

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}

_signal_handler: DealSignalHandler | None = None


def get_signal_handler() -> DealSignalHandler:
    """Build the signal handler once and reuse it across warm invocations."""
    global _signal_handler
    if _signal_handler is None:
        settings = Settings.from_env()
        init_engine_from_url(settings.database_url)
        create_tables()
        _signal_handler = DealSignalHandler(DeduplicationStore(settings.dedup_cache_size))
    return _signal_handler


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health
    - GET /api
    - POST /deal-signals
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/deal-signals" and http_method == "POST":
        return handle_deal_signal(event)
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    else:
        return _response(404, {"error": "Not found", "path": path})


def _response(status_code: int, payload) -> dict:
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(payload)}


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(
        200,
        {
            "status": "ok",
            "message": "Outcome Billing Deal Signals",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": {"deal_signals": "/deal-signals [POST]", "health": "/health [GET]"},
        },
    )


def parse_signal(event) -> dict:
    """Decode the request body and check the signal fields."""
    body = event.get("body", "")
    if isinstance(body, str):
        if not body:
            raise ValueError("No input data provided")
        # Handle base64 encoded body (API Gateway)
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        signal = json.loads(body)
    else:
        signal = body

    if not isinstance(signal, dict):
        raise ValueError("Signal must be a JSON object")

    signal_type = signal.get("type")
    if signal_type not in SIGNAL_TYPES:
        raise ValueError(f"Unknown signal type: {signal_type}. Must be one of {list(SIGNAL_TYPES)}")
    if not signal.get("opportunity_id"):
        raise ValueError("opportunity_id is required")
    if signal_type == "closed_won" and not signal.get("organization_id"):
        raise ValueError("organization_id is required for closed_won signals")
    if signal_type == "reopened" and not signal.get("stage"):
        raise ValueError("stage is required for reopened signals")

    return signal


def handle_deal_signal(event):
    """Route a deal-stage signal to the outcome billing pipeline."""
    try:
        signal = parse_signal(event)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})
    except ValueError as e:
        logger.error(f"Validation error: {str(e)}")
        return _response(400, {"error": f"Validation error: {str(e)}", "status": "validation_failed"})

    opportunity_id = signal["opportunity_id"]
    logger.info(f"Processing {signal['type']} signal for opportunity: {opportunity_id}")

    try:
        handler = get_signal_handler()
        if signal["type"] == "closed_won":
            outcome = handler.deal_closed_won(opportunity_id, signal["organization_id"], signal.get("signal_key"))
        else:
            outcome = handler.deal_reopened(opportunity_id, signal["stage"], signal.get("signal_key"))
    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})

    return _response(
        200,
        {
            "status": "processed",
            "type": signal["type"],
            "opportunity_id": opportunity_id,
            "event": event_to_dict(outcome) if outcome is not None else None,
        },
    )
