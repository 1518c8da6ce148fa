"""
Flask routes for the Glide / Stripe Connect bridge

- POST /create-connected-account: create account + onboarding link
- POST /webhook: Stripe account.updated completion events
- GET  /get-remediation-link: re-issue onboarding link for a mapped row
- GET  /: liveness probe
"""

import logging

import stripe
from flask import Blueprint, Response, current_app, jsonify, request

from .error_handling import MalformedEvent
from .service import OnboardingService
from .validators import CompletionEvent, OnboardingRequest, parse_json_body, validate_row_id

bp = Blueprint("connect_bridge", __name__)
logger = logging.getLogger(__name__)


def get_onboarding_service() -> OnboardingService:
    return current_app.extensions["connect_bridge"]


@bp.route("/", methods=["GET"])
def liveness():
    return Response("alive", mimetype="text/plain")


@bp.route("/create-connected-account", methods=["POST"])
def create_connected_account():
    """
    Create a connected account and onboarding link for a Glide row

    Body:
        row_id: Glide row id (required)
        email: Account holder email (required)
        name, employer_email, type, business_type: optional

    Returns:
        200: {"onboarding_url": ...}
        400: Missing or malformed fields
        500: Stripe, Glide or storage failure
    """
    onboarding = OnboardingRequest.from_payload(
        parse_json_body(request.get_data()),
        default_account_type=current_app.config["STRIPE_DEFAULT_ACCOUNT_TYPE"],
        default_business_type=current_app.config["STRIPE_DEFAULT_BUSINESS_TYPE"]
    )

    onboarding_url = get_onboarding_service().create_connected_account(onboarding)
    return jsonify({"onboarding_url": onboarding_url})


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """
    Handle Stripe Connect webhooks

    Acknowledged with 200 whenever the payload parses, whatever happens
    downstream, so Stripe only redelivers events it could not hand over.

    Returns:
        200: {"received": true}
        400: Unparsable payload or invalid signature
    """
    service = get_onboarding_service()
    payload = request.get_data()

    try:
        data = service.stripe_service.construct_event(
            payload, request.headers.get("Stripe-Signature")
        )
    except ValueError:
        raise MalformedEvent("Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {str(e)}")
        raise MalformedEvent("Invalid webhook signature")

    event = CompletionEvent.from_payload(data)
    outcome = service.handle_webhook_event(event)
    logger.info(f"Webhook {event.event_id or '-'} ({event.event_type}) handled: {outcome.value}")

    return jsonify({"received": True})


@bp.route("/get-remediation-link", methods=["GET"])
def get_remediation_link():
    """
    Re-issue an onboarding link for a row that already has an account

    Query:
        row_id: Glide row id

    Returns:
        200: {"employee_row_id": ..., "remediation_url": ...}
        400: Missing row_id
        404: No account mapped for row_id
        500: Stripe or storage failure
    """
    row_id = validate_row_id(request.args.get("row_id"))
    remediation_url = get_onboarding_service().get_remediation_link(row_id)

    return jsonify({
        "employee_row_id": row_id,
        "remediation_url": remediation_url
    })
