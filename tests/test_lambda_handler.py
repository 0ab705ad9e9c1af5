"""Tests for AWS Lambda handler."""

import base64
import json
from datetime import datetime
from decimal import Decimal

import pytest

import lambda_handler as handler_module
from lambda_handler import lambda_handler
from outcome_billing.db import session_scope
from outcome_billing.db.tables import Opportunity, Organization
from outcome_billing.services import PricingPlanStore
from outcome_billing.signals import DealSignalHandler, DeduplicationStore


@pytest.fixture
def signal_handler(db_engine, clock, monkeypatch):
    """Point the Lambda at the in-memory test database."""
    handler = DealSignalHandler(DeduplicationStore(), clock=clock)
    monkeypatch.setattr(handler_module, "_signal_handler", handler)
    return handler


@pytest.fixture
def deal(signal_handler):
    with session_scope() as session:
        organization = Organization(name="Acme Corp", slug="acme")
        session.add(organization)
        session.flush()
        PricingPlanStore(session).create({
            "organization_id": organization.id,
            "pricing_model": "TIERED_FLAT_FEE",
            "tier_configuration": [
                {"min_amount": 0, "max_amount": 500000, "fee": 25000},
                {"min_amount": 500000, "max_amount": 2500000, "fee": 50000},
            ],
        })
        opportunity = Opportunity(
            organization_id=organization.id,
            name="Enterprise Renewal",
            amount=Decimal("15000.00"),
            closed_date=datetime(2024, 3, 10),
            is_won=True,
        )
        session.add(opportunity)
        session.flush()
        return {"organization_id": organization.id, "opportunity_id": opportunity.id}


def _signal_event(payload, encode=False):
    body = json.dumps(payload)
    if encode:
        return {
            "httpMethod": "POST",
            "path": "/deal-signals",
            "body": base64.b64encode(body.encode("utf-8")).decode("ascii"),
            "isBase64Encoded": True,
        }
    return {"httpMethod": "POST", "path": "/deal-signals", "body": body}


class TestLambdaHandler:
    """Test the Lambda handler routes and responses."""

    def test_health_check(self):
        """GET /health returns healthy status."""
        event = {"httpMethod": "GET", "path": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "healthy"

    def test_api_info(self):
        """GET /api returns API information."""
        response = lambda_handler({"httpMethod": "GET", "path": "/api"}, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "ok"
        assert "deal_signals" in body["endpoints"]

    def test_cors_preflight(self):
        """OPTIONS requests return CORS headers."""
        response = lambda_handler({"httpMethod": "OPTIONS", "path": "/deal-signals"}, None)

        assert response["statusCode"] == 200
        assert "Access-Control-Allow-Origin" in response["headers"]
        assert "Access-Control-Allow-Methods" in response["headers"]

    def test_not_found(self):
        """Unknown paths return 404."""
        response = lambda_handler({"httpMethod": "GET", "path": "/unknown"}, None)
        assert response["statusCode"] == 404

    def test_http_api_format(self):
        """HTTP API (v2) events carry method and path elsewhere."""
        event = {"rawPath": "/health", "requestContext": {"http": {"method": "GET"}}}
        assert lambda_handler(event, None)["statusCode"] == 200


class TestDealSignals:
    """POST /deal-signals drives the outcome billing pipeline."""

    def test_closed_won_records_event(self, deal):
        """$15,000 deal falls in the $5,000-$25,000 tier -> $500"""
        response = lambda_handler(_signal_event({"type": "closed_won", "signal_key": "evt-1", **deal}), None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "processed"
        assert body["event"]["fee_amount"] == 50000
        assert body["event"]["fee_calculation"]["tier"]["fee"] == 50000

    def test_base64_body(self, deal):
        response = lambda_handler(_signal_event({"type": "closed_won", **deal}, encode=True), None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["event"]["status"] == "PENDING"

    def test_duplicate_signal_returns_no_event(self, deal):
        payload = {"type": "closed_won", "signal_key": "evt-1", **deal}
        lambda_handler(_signal_event(payload), None)

        response = lambda_handler(_signal_event(payload), None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["event"] is None

    def test_reopened_flags_event(self, deal):
        lambda_handler(_signal_event({"type": "closed_won", **deal}), None)

        response = lambda_handler(_signal_event({
            "type": "reopened", "opportunity_id": deal["opportunity_id"], "stage": "PROPOSAL",
        }), None)

        event = json.loads(response["body"])["event"]
        assert event["status"] == "FLAGGED_FOR_REVIEW"
        assert event["admin_notes"] == "Deal reopened - changed from CLOSED_WON to PROPOSAL"

    def test_invalid_json(self):
        event = {"httpMethod": "POST", "path": "/deal-signals", "body": "{not json"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        assert "Invalid JSON" in json.loads(response["body"])["error"]

    def test_empty_body(self):
        event = {"httpMethod": "POST", "path": "/deal-signals", "body": ""}
        assert lambda_handler(event, None)["statusCode"] == 400

    @pytest.mark.parametrize("payload", [
        {"type": "closed_lost", "opportunity_id": "opp-1", "organization_id": "org-1"},
        {"type": "closed_won", "organization_id": "org-1"},
        {"type": "closed_won", "opportunity_id": "opp-1"},
        {"type": "reopened", "opportunity_id": "opp-1"},
    ])
    def test_validation_errors(self, payload):
        response = lambda_handler(_signal_event(payload), None)

        assert response["statusCode"] == 400
        assert json.loads(response["body"])["status"] == "validation_failed"
